from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from inventory_api.domain.models import (
    Category, CategoryStatus, InventoryTransaction, Product, ProductStatus, Supplier, SupplierStatus,
    TransactionType, utcnow,
)
from .errors import ValidationError
from .product_service import ProductService
from .query import QueryOptions
from .transaction_service import TransactionService, transaction_to_dict

SEVERITIES = ("critical", "warning", "info")
GROUPINGS = ("day", "week", "month")

# Stock above this multiple of the low-stock threshold counts as overstock
OVERSTOCK_FACTOR = 3


def _period_key(moment, group_by: str) -> str:
    day = moment.date()
    if group_by == "month":
        return day.strftime("%Y-%m")
    if group_by == "week":
        return (day - timedelta(days=day.weekday())).isoformat()
    return day.isoformat()


def _stock_item(product: Product) -> Dict[str, Any]:
    return {
        "productId": product.id,
        "name": product.name,
        "sku": product.sku,
        "quantity": product.quantity,
        "lowStockThreshold": product.low_stock_threshold,
    }


class DashboardService:
    def __init__(self, db: Session):
        self.db = db
        self.products = ProductService(db)
        self.ledger = TransactionService(db)

    def get_overview(self, days: int = 30) -> Dict[str, Any]:
        if days <= 0:
            raise ValidationError.for_field("days", "days must be positive", days)
        end_date = utcnow()
        start_date = end_date - timedelta(days=days)

        stats = self.products.get_inventory_stats()
        recent = self.ledger.get_recent_transactions(days, QueryOptions(limit=10))
        return {
            "overview": {
                "totalProducts": self.db.query(Product).filter(Product.status == ProductStatus.ACTIVE.value).count(),
                "totalSuppliers": self.db.query(Supplier).filter(Supplier.status == SupplierStatus.ACTIVE.value).count(),
                "totalCategories": self.db.query(Category).filter(Category.status == CategoryStatus.ACTIVE.value).count(),
                "lowStockCount": stats["lowStockProducts"],
                "outOfStockCount": stats["outOfStockProducts"],
                "inventoryValue": stats["totalValue"],
                "lastUpdated": end_date,
            },
            "recent": {
                "transactions": [transaction_to_dict(t) for t in recent.documents],
                "period": f"{days} days",
            },
            "movements": self.ledger.get_transaction_stats(start_date, end_date)["overall"],
        }

    def get_alerts(self, severity: Optional[str] = None, limit: int = 50) -> Dict[str, Any]:
        if severity and severity not in SEVERITIES:
            raise ValidationError.for_field("severity", f"severity must be one of: {', '.join(SEVERITIES)}", severity)
        options = QueryOptions(limit=limit, sort=[("quantity", "asc"), ("name", "asc")])
        out_of_stock = self.products.get_out_of_stock_products(options).documents
        low_stock = self.products.get_low_stock_products(options, include_out_of_stock=False).documents
        depleting = self.ledger.get_low_stock_alerts()

        alerts = {
            "critical": [
                {"type": "out_of_stock", "severity": "critical", "productId": p.id,
                 "message": f'Product "{p.name}" is out of stock'}
                for p in out_of_stock
            ],
            "warning": [
                {"type": "low_stock", "severity": "warning", "productId": p.id,
                 "message": f'Product "{p.name}" is running low ({p.quantity} left)'}
                for p in low_stock
            ],
            "info": [
                {"type": "depleting", "severity": "info", "productId": a["productId"],
                 "message": f'Product "{a["name"]}" runs out in about {a["daysUntilEmpty"]} days'}
                for a in depleting[:limit]
            ],
        }
        summary = {key: len(value) for key, value in alerts.items()}
        summary["total"] = sum(summary.values())
        if severity:
            alerts = {severity: alerts[severity]}
        return {"alerts": alerts, "summary": summary}

    # Inventory overview

    def get_stock_level_distribution(self) -> Dict[str, int]:
        distribution = {"outOfStock": 0, "lowStock": 0, "adequateStock": 0, "overStock": 0}
        rows = (
            self.db.query(Product.quantity, Product.low_stock_threshold)
            .filter(Product.status == ProductStatus.ACTIVE.value)
            .all()
        )
        for quantity, threshold in rows:
            if quantity == 0:
                distribution["outOfStock"] += 1
            elif quantity <= threshold:
                distribution["lowStock"] += 1
            elif quantity > threshold * OVERSTOCK_FACTOR:
                distribution["overStock"] += 1
            else:
                distribution["adequateStock"] += 1
        return distribution

    def get_supplier_breakdown(self) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(
                Supplier.id,
                Supplier.name,
                func.count(Product.id),
                func.sum(Product.quantity),
                func.sum(Product.quantity * Product.price),
            )
            .select_from(Product)
            .outerjoin(Supplier, Supplier.id == Product.supplier_id)
            .filter(Product.status == ProductStatus.ACTIVE.value)
            .group_by(Supplier.id, Supplier.name)
            .all()
        )
        breakdown = [
            {
                "supplierId": supplier_id,
                "supplier": name or "No Supplier",
                "productCount": count,
                "totalQuantity": int(quantity or 0),
                "totalValue": round(float(value or 0), 2),
            }
            for supplier_id, name, count, quantity, value in rows
        ]
        return sorted(breakdown, key=lambda item: (-item["totalValue"], item["supplier"]))

    def get_inventory_overview(self) -> Dict[str, Any]:
        stats = self.products.get_inventory_stats()
        total_items = stats["totalQuantity"]
        low_stock = self.products.get_low_stock_products(
            QueryOptions(limit=5, sort=[("quantity", "asc"), ("name", "asc")])
        )
        recent = self.ledger.get_recent_transactions(7, QueryOptions(limit=10))
        return {
            "totalValue": {
                "total": stats["totalValue"],
                "totalItems": total_items,
                "averageItemValue": round(stats["totalValue"] / total_items, 2) if total_items else 0,
            },
            "stockLevels": self.get_stock_level_distribution(),
            "categoryBreakdown": self.products.get_category_breakdown(),
            "supplierBreakdown": self.get_supplier_breakdown(),
            "alerts": {"lowStock": [_stock_item(p) for p in low_stock.documents]},
            "recentMovements": [transaction_to_dict(t) for t in recent.documents],
        }

    # Outbound analytics

    def get_sales_analytics(self, days: int = 30, group_by: str = "day", limit: int = 10) -> Dict[str, Any]:
        """
        Stock-out activity over the last ``days``.

        Returns a trend bucketed by day, week (starting Monday) or month, the
        products with the most units out and per-category totals. An entry is
        valued at its unit cost, or at the product price when it has none.
        """
        if days <= 0:
            raise ValidationError.for_field("days", "days must be positive", days)
        if group_by not in GROUPINGS:
            raise ValidationError.for_field("group_by", f"group_by must be one of: {', '.join(GROUPINGS)}", group_by)
        end_date = utcnow()
        start_date = end_date - timedelta(days=days)

        t = InventoryTransaction
        rows = (
            self.db.query(
                t.created_at,
                t.quantity,
                func.coalesce(t.unit_cost, Product.price),
                Product.id,
                Product.name,
                Category.name,
            )
            .select_from(t)
            .join(Product, Product.id == t.product_id)
            .outerjoin(Category, Category.id == Product.category_id)
            .filter(
                t.type == TransactionType.STOCK_OUT.value,
                t.created_at >= start_date,
                t.created_at <= end_date,
            )
            .all()
        )

        def bucket():
            return {"quantity": 0, "value": 0.0, "transactions": 0}

        trend = defaultdict(bucket)
        by_category = defaultdict(bucket)
        by_product: Dict[int, Dict[str, Any]] = {}
        for created_at, quantity, unit_value, product_id, name, category in rows:
            units = abs(quantity)
            value = units * float(unit_value or 0)
            for totals in (trend[_period_key(created_at, group_by)], by_category[category or "Uncategorized"]):
                totals["quantity"] += units
                totals["value"] += value
                totals["transactions"] += 1
            product = by_product.setdefault(
                product_id, {"productId": product_id, "name": name, "totalQuantity": 0, "totalValue": 0.0}
            )
            product["totalQuantity"] += units
            product["totalValue"] += value

        top_products = sorted(by_product.values(), key=lambda p: (-p["totalQuantity"], p["productId"]))[:limit]
        categories = sorted(by_category.items(), key=lambda item: (-item[1]["value"], item[0]))
        return {
            "period": {"start": start_date, "end": end_date, "days": days, "groupBy": group_by},
            "salesTrend": [
                {"date": key, **totals, "value": round(totals["value"], 2)}
                for key, totals in sorted(trend.items())
            ],
            "topSellingProducts": [{**p, "totalValue": round(p["totalValue"], 2)} for p in top_products],
            "categoryPerformance": [
                {"category": name, **totals, "value": round(totals["value"], 2)}
                for name, totals in categories
            ],
        }
