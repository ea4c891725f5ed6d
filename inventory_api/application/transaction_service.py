"""
Quantity ledger.

Append-only history of inventory quantity changes. Stored quantities are
signed by transaction type (see ``domain.ledger.effective_quantity``) and
every entry satisfies ``new_quantity - previous_quantity == quantity``.
"""

import calendar
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from inventory_api.core_settings import get_settings
from inventory_api.domain.ledger import DEPLETION_TYPES, effective_quantity
from inventory_api.domain.models import InventoryTransaction, Product, Supplier, TransactionType, utcnow
from shared.core import get_logger
from .errors import InventoryError, NotFoundError, ValidationError
from .query import Page, QueryOptions, paginate
from .unit_of_work import commit, translate_integrity_errors

logger = get_logger(__name__, component="ledger")

REQUIRED_FIELDS = ("product_id", "type", "quantity", "previous_quantity", "new_quantity", "reason", "performed_by")
OPTIONAL_FIELDS = ("unit_cost", "reference", "location", "notes", "supplier_id")


def _money(value) -> float:
    return float(value or 0)


def transaction_to_dict(transaction: InventoryTransaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "product_id": transaction.product_id,
        "type": transaction.type,
        "quantity": transaction.quantity,
        "previous_quantity": transaction.previous_quantity,
        "new_quantity": transaction.new_quantity,
        "unit_cost": float(transaction.unit_cost) if transaction.unit_cost is not None else None,
        "total_cost": float(transaction.total_cost) if transaction.total_cost is not None else None,
        "reason": transaction.reason,
        "reference": transaction.reference,
        "supplier_id": transaction.supplier_id,
        "performed_by": transaction.performed_by,
        "location": transaction.location,
        "notes": transaction.notes,
        "created_at": transaction.created_at,
    }


class TransactionService:
    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def _validate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        details = []
        for name in REQUIRED_FIELDS:
            value = data.get(name)
            if value is None or value == "" or (name == "quantity" and value == 0):
                details.append({"field": name, "message": f"{name} is required", "value": value})
        if details:
            raise ValidationError("Validation failed: " + ", ".join(d["message"] for d in details), details)

        try:
            transaction_type = TransactionType(data["type"])
        except ValueError:
            raise ValidationError.for_field(
                "type", f"type must be one of: {', '.join(t.value for t in TransactionType)}", data["type"]
            )

        quantity = effective_quantity(transaction_type, int(data["quantity"]))
        previous_quantity = int(data["previous_quantity"])
        new_quantity = int(data["new_quantity"])
        if previous_quantity < 0 or new_quantity < 0:
            raise ValidationError.for_field("new_quantity", "Quantities cannot be negative", new_quantity)
        if new_quantity - previous_quantity != quantity:
            raise ValidationError.for_field(
                "new_quantity",
                f"new_quantity - previous_quantity must equal {quantity} for a {transaction_type.value} entry",
                new_quantity,
            )

        unit_cost = data.get("unit_cost")
        if unit_cost is not None:
            unit_cost = Decimal(str(unit_cost))
            if unit_cost < 0:
                raise ValidationError.for_field("unit_cost", "unit_cost cannot be negative", float(unit_cost))

        normalized = {name: data.get(name) for name in OPTIONAL_FIELDS}
        normalized.update(
            product_id=int(data["product_id"]),
            type=transaction_type.value,
            quantity=quantity,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            unit_cost=unit_cost,
            total_cost=(abs(quantity) * unit_cost).quantize(Decimal("0.01")) if unit_cost is not None else None,
            reason=str(data["reason"]),
            performed_by=str(data["performed_by"]),
        )
        return normalized

    def append(self, data: Dict[str, Any]) -> InventoryTransaction:
        """Validate and add a ledger entry to the current unit of work without committing."""
        values = self._validate(data)
        if not self.db.query(Product.id).filter(Product.id == values["product_id"]).first():
            raise NotFoundError("Product", values["product_id"])
        supplier_id = values["supplier_id"]
        if supplier_id is not None and not self.db.query(Supplier.id).filter(Supplier.id == supplier_id).first():
            raise NotFoundError("Supplier", supplier_id)
        transaction = InventoryTransaction(**values)
        self.db.add(transaction)
        with translate_integrity_errors(self.db):
            self.db.flush()
        return transaction

    def create_transaction(self, data: Dict[str, Any]) -> InventoryTransaction:
        data = dict(data)
        if not data.get("performed_by"):
            data["performed_by"] = self.settings.DEFAULT_ACTOR
        try:
            transaction = self.append(data)
        except InventoryError as exc:
            self.db.rollback()
            logger.info(
                "Ledger entry rejected",
                extra={'extra_fields': {'product_id': data.get("product_id"), 'error': exc.kind}}
            )
            raise
        commit(self.db)
        logger.info(
            "Ledger entry recorded",
            extra={'extra_fields': {
                'transaction_id': transaction.id, 'product_id': transaction.product_id,
                'type': transaction.type, 'quantity': transaction.quantity,
            }}
        )
        return transaction

    def bulk_create_transactions(self, entries: List[Dict[str, Any]]) -> Dict[str, List[Any]]:
        results = {"successful": [], "failed": []}
        for entry in entries:
            try:
                results["successful"].append(self.create_transaction(entry))
            except InventoryError as exc:
                logger.warning(
                    "Bulk ledger entry failed",
                    extra={'extra_fields': {'product_id': entry.get("product_id"), 'error': exc.message}}
                )
                results["failed"].append({"data": entry, "error": exc.message})
        return results

    # Queries

    def get_transaction(self, transaction_id: int) -> InventoryTransaction:
        transaction = (
            self.db.query(InventoryTransaction)
            .filter(InventoryTransaction.id == transaction_id)
            .first()
        )
        if not transaction:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def _page(self, query, options: Optional[QueryOptions]) -> Page:
        return paginate(query, InventoryTransaction, options or QueryOptions())

    def get_product_transactions(self, product_id: int, options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(InventoryTransaction).filter(InventoryTransaction.product_id == product_id)
        return self._page(query, options)

    def get_transactions_by_type(self, transaction_type: str, options: Optional[QueryOptions] = None) -> Page:
        try:
            transaction_type = TransactionType(transaction_type).value
        except ValueError:
            raise ValidationError.for_field("type", "Unknown transaction type", transaction_type)
        query = self.db.query(InventoryTransaction).filter(InventoryTransaction.type == transaction_type)
        return self._page(query, options)

    def get_transactions_by_date_range(self, start_date: datetime, end_date: datetime,
                                       options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(InventoryTransaction).filter(
            InventoryTransaction.created_at >= start_date,
            InventoryTransaction.created_at <= end_date,
        )
        return self._page(query, options)

    def get_transactions_by_user(self, user: str, options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(InventoryTransaction).filter(InventoryTransaction.performed_by == user)
        return self._page(query, options)

    def get_recent_transactions(self, days: int = 7, options: Optional[QueryOptions] = None) -> Page:
        end_date = utcnow()
        return self.get_transactions_by_date_range(end_date - timedelta(days=days), end_date, options)

    def get_transaction_history(self, filters: Dict[str, Any], options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(InventoryTransaction)
        column = InventoryTransaction
        if filters.get("product_id") is not None:
            query = query.filter(column.product_id == filters["product_id"])
        if filters.get("type"):
            query = query.filter(column.type == filters["type"])
        if filters.get("user"):
            query = query.filter(column.performed_by.ilike(f"%{filters['user']}%"))
        if filters.get("start_date"):
            query = query.filter(column.created_at >= filters["start_date"])
        if filters.get("end_date"):
            query = query.filter(column.created_at <= filters["end_date"])
        if filters.get("min_quantity") is not None:
            query = query.filter(column.quantity >= filters["min_quantity"])
        if filters.get("max_quantity") is not None:
            query = query.filter(column.quantity <= filters["max_quantity"])
        if filters.get("min_cost") is not None:
            query = query.filter(column.unit_cost >= filters["min_cost"])
        if filters.get("max_cost") is not None:
            query = query.filter(column.unit_cost <= filters["max_cost"])
        if filters.get("reference"):
            query = query.filter(column.reference.ilike(f"%{filters['reference']}%"))
        if filters.get("location"):
            query = query.filter(column.location.ilike(f"%{filters['location']}%"))
        return self._page(query, options)

    def get_product_audit_trail(self, product_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(InventoryTransaction)
            .filter(InventoryTransaction.product_id == product_id)
            .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
            .limit(limit)
            .all()
        )
        keys = ("id", "type", "quantity", "previous_quantity", "new_quantity",
                "reason", "performed_by", "created_at", "reference")
        return [{key: getattr(row, key) for key in keys} for row in rows]

    # Aggregates

    def get_inventory_movements(self, product_id: int, start_date: Optional[datetime] = None,
                                end_date: Optional[datetime] = None) -> Dict[str, Any]:
        t = InventoryTransaction
        query = self.db.query(
            t.type,
            func.sum(t.quantity),
            func.count(t.id),
            func.sum(t.total_cost),
            func.avg(t.unit_cost),
            func.max(t.created_at),
        ).filter(t.product_id == product_id)
        if start_date:
            query = query.filter(t.created_at >= start_date)
        if end_date:
            query = query.filter(t.created_at <= end_date)
        rows = query.group_by(t.type).order_by(func.sum(t.quantity).desc()).all()

        summary = {
            "totalIn": 0,
            "totalOut": 0,
            "netMovement": 0,
            "totalTransactions": 0,
            "totalCost": 0.0,
            "byType": {},
        }
        for transaction_type, quantity, count, total_cost, average_cost, last in rows:
            quantity = int(quantity or 0)
            summary["byType"][transaction_type] = {
                "quantity": quantity,
                "count": count,
                "totalCost": _money(total_cost),
                "averageCost": _money(average_cost),
                "lastTransaction": last,
            }
            if quantity > 0:
                summary["totalIn"] += quantity
            else:
                summary["totalOut"] += abs(quantity)
            summary["totalTransactions"] += count
            summary["totalCost"] += _money(total_cost)

        summary["netMovement"] = summary["totalIn"] - summary["totalOut"]
        return summary

    def get_transaction_stats(self, start_date: datetime, end_date: datetime) -> Dict[str, Any]:
        t = InventoryTransaction
        window = (t.created_at >= start_date, t.created_at <= end_date)

        by_type = [
            {"type": row[0], "count": row[1], "totalQuantity": int(row[2] or 0), "totalCost": _money(row[3])}
            for row in self.db.query(t.type, func.count(t.id), func.sum(t.quantity), func.sum(t.total_cost))
            .filter(*window).group_by(t.type).order_by(t.type).all()
        ]

        day = func.date(t.created_at)
        by_date = [
            {"date": str(row[0]), "count": row[1], "totalQuantity": int(row[2] or 0)}
            for row in self.db.query(day, func.count(t.id), func.sum(t.quantity))
            .filter(*window).group_by(day).order_by(day).all()
        ]

        by_user = [
            {"user": row[0], "count": row[1], "totalQuantity": int(row[2] or 0)}
            for row in self.db.query(t.performed_by, func.count(t.id), func.sum(t.quantity))
            .filter(*window).group_by(t.performed_by).order_by(func.count(t.id).desc(), t.performed_by).all()
        ]

        totals = self.db.query(
            func.count(t.id),
            func.sum(case((t.quantity > 0, t.quantity), else_=0)),
            func.sum(case((t.quantity < 0, -t.quantity), else_=0)),
            func.sum(t.total_cost),
            func.count(func.distinct(t.product_id)),
        ).filter(*window).one()
        total_in = int(totals[1] or 0)
        total_out = int(totals[2] or 0)

        return {
            "period": {
                "startDate": start_date,
                "endDate": end_date,
                "days": max(0, math.ceil((end_date - start_date).total_seconds() / 86400)),
            },
            "overall": {
                "totalTransactions": totals[0],
                "totalQuantityIn": total_in,
                "totalQuantityOut": total_out,
                "totalCost": _money(totals[3]),
                "uniqueProducts": totals[4],
                "netQuantity": total_in - total_out,
            },
            "byType": by_type,
            "byDate": by_date,
            "byUser": by_user,
        }

    def get_monthly_transaction_summary(self, year: int, month: int) -> Dict[str, Any]:
        if not 1 <= month <= 12:
            raise ValidationError.for_field("month", "month must be between 1 and 12", month)
        last_day = calendar.monthrange(year, month)[1]
        start_date = datetime(year, month, 1)
        end_date = datetime(year, month, last_day, 23, 59, 59, 999999)
        return self.get_transaction_stats(start_date, end_date)

    def get_low_stock_alerts(self, days: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Products with recent outbound activity that are at or below their
        threshold, or that would run out within the depletion horizon at the
        observed daily outbound rate. Sorted by days until empty, soonest first.
        """
        if days is None:
            days = self.settings.LOW_STOCK_WINDOW_DAYS
        if days <= 0:
            raise ValidationError.for_field("days", "days must be positive", days)
        horizon = self.settings.DEPLETION_HORIZON_DAYS
        sentinel = self.settings.DAYS_UNTIL_EMPTY_SENTINEL
        start_date = utcnow() - timedelta(days=days)

        t = InventoryTransaction
        rows = (
            self.db.query(
                Product,
                func.sum(-t.quantity),
                func.count(t.id),
                func.max(t.created_at),
            )
            .select_from(t)
            .join(Product, Product.id == t.product_id)
            .filter(
                t.created_at >= start_date,
                t.type.in_([kind.value for kind in DEPLETION_TYPES]),
            )
            .group_by(Product.id)
            .all()
        )

        alerts = []
        for product, total_out, count, last in rows:
            total_out = int(total_out or 0)
            average_out_per_day = total_out / days
            at_threshold = product.quantity <= product.low_stock_threshold
            depleting = product.quantity < average_out_per_day * horizon
            if not (at_threshold or depleting):
                continue
            days_until_empty = (
                product.quantity / average_out_per_day if average_out_per_day > 0 else sentinel
            )
            alerts.append({
                "productId": product.id,
                "name": product.name,
                "sku": product.sku,
                "quantity": product.quantity,
                "lowStockThreshold": product.low_stock_threshold,
                "totalOut": total_out,
                "transactionCount": count,
                "lastTransaction": last,
                "averageOutPerDay": round(average_out_per_day, 4),
                "daysUntilEmpty": round(days_until_empty, 2),
            })
        alerts.sort(key=lambda alert: alert["daysUntilEmpty"])
        return alerts
