"""
Product stock coordinator.

Every path that changes a product's quantity reads the row with a lock,
writes the new quantity, then appends the matching ledger entry in the same
unit of work, so the entry's previous/new quantities always describe the
transition that was committed.
"""

import random
import string
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session

from inventory_api.core_settings import get_settings
from inventory_api.domain.ledger import effective_quantity, movement_type_for
from inventory_api.domain.models import (
    Category, InventoryTransaction, Product, ProductStatus, Supplier, TransactionType, utcnow,
)
from shared.core import get_logger
from .errors import DuplicateError, InvalidOperationError, InventoryError, NotFoundError, ValidationError
from .query import Page, QueryOptions, paginate
from .schemas import ProductCreate, ProductUpdate
from .transaction_service import TransactionService
from .unit_of_work import commit, translate_integrity_errors

logger = get_logger(__name__, component="stock")


class ProductService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = TransactionService(db)
        self.settings = get_settings()

    def _generate_sku(self, category: Optional[Category]) -> str:
        """SKU in format <CAT>-<6 digits>-<3 chars>, e.g. ELE-482913-K7Q"""
        prefix = "PRD"
        if category is not None:
            letters = "".join(ch for ch in category.name if ch.isalnum())[:3].upper()
            prefix = letters or prefix
        for _ in range(5):
            stamp = str(time.time_ns() // 1_000_000)[-6:]
            suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=3))
            sku = f"{prefix}-{stamp}-{suffix}"
            if not self.find_by_sku(sku):
                return sku
        raise DuplicateError("sku", sku)

    # Lookups

    def get(self, product_id: int) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    def _lock(self, product_id: int) -> Product:
        # Row lock serializes concurrent read-modify-write of quantity
        product = (
            self.db.query(Product)
            .filter(Product.id == product_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    def find_by_sku(self, sku: str) -> Optional[Product]:
        return self.db.query(Product).filter(Product.sku == sku.upper()).first()

    def find_by_barcode(self, barcode: str) -> Optional[Product]:
        return self.db.query(Product).filter(Product.barcode == barcode).first()

    def _category(self, category_id: Optional[int]) -> Optional[Category]:
        if category_id is None:
            return None
        category = self.db.query(Category).filter(Category.id == category_id).first()
        if not category:
            raise NotFoundError("Category", category_id)
        return category

    def _check_supplier(self, supplier_id: Optional[int]) -> None:
        if supplier_id is not None and not self.db.query(Supplier.id).filter(Supplier.id == supplier_id).first():
            raise NotFoundError("Supplier", supplier_id)

    # Lifecycle

    def create(self, data: ProductCreate, performed_by: Optional[str] = None) -> Product:
        performed_by = performed_by or self.settings.DEFAULT_ACTOR
        values = data.model_dump()
        category = self._category(values["category_id"])
        self._check_supplier(values["supplier_id"])

        if values.get("sku"):
            values["sku"] = values["sku"].strip().upper()
            if self.find_by_sku(values["sku"]):
                raise DuplicateError("sku", values["sku"])
        else:
            values["sku"] = self._generate_sku(category)
        if values.get("barcode") and self.find_by_barcode(values["barcode"]):
            raise DuplicateError("barcode", values["barcode"])
        values["status"] = ProductStatus(values["status"]).value

        product = Product(**values)
        self.db.add(product)
        try:
            with translate_integrity_errors(self.db):
                self.db.flush()
            if product.quantity > 0:
                self.ledger.append({
                    "product_id": product.id,
                    "type": TransactionType.STOCK_IN,
                    "quantity": product.quantity,
                    "previous_quantity": 0,
                    "new_quantity": product.quantity,
                    "reason": "Initial stock",
                    "performed_by": performed_by,
                    "unit_cost": product.price,
                })
        except InventoryError:
            self.db.rollback()
            raise
        commit(self.db)
        self.db.refresh(product)

        logger.info(
            "Product created",
            extra={'extra_fields': {'product_id': product.id, 'sku': product.sku, 'quantity': product.quantity}}
        )
        return product

    def _quantity_entry(self, product: Product, previous: int, reason: str, performed_by: str) -> Dict[str, Any]:
        difference = product.quantity - previous
        return {
            "product_id": product.id,
            "type": movement_type_for(difference),
            "quantity": difference,
            "previous_quantity": previous,
            "new_quantity": product.quantity,
            "reason": reason,
            "performed_by": performed_by,
        }

    def update(self, product_id: int, data: ProductUpdate, performed_by: Optional[str] = None) -> Product:
        performed_by = performed_by or self.settings.DEFAULT_ACTOR
        fields = data.model_fields_set - {"reason"}

        try:
            product = self._lock(product_id)
            previous = product.quantity

            if "category_id" in fields:
                self._category(data.category_id)
            if "supplier_id" in fields:
                self._check_supplier(data.supplier_id)
            if "barcode" in fields and data.barcode and data.barcode != product.barcode:
                if self.find_by_barcode(data.barcode):
                    raise DuplicateError("barcode", data.barcode)

            for name in fields:
                value = getattr(data, name)
                if name in ("name", "price", "quantity", "low_stock_threshold", "status") and value is None:
                    continue
                if name == "status":
                    value = ProductStatus(value).value
                setattr(product, name, value)

            with translate_integrity_errors(self.db):
                self.db.flush()
            if product.quantity != previous:
                self.ledger.append(
                    self._quantity_entry(product, previous, data.reason or "Product update", performed_by)
                )
        except InventoryError:
            self.db.rollback()
            raise
        commit(self.db)
        self.db.refresh(product)

        logger.info(
            "Product updated",
            extra={'extra_fields': {'product_id': product.id, 'fields': sorted(fields)}}
        )
        return product

    def soft_delete(self, product_id: int) -> Product:
        product = self.get(product_id)
        product.status = ProductStatus.INACTIVE.value
        commit(self.db)
        logger.info("Product deactivated", extra={'extra_fields': {'product_id': product_id}})
        return product

    # Quantity changes

    def update_quantity(self, product_id: int, quantity: int, reason: str = "Manual adjustment",
                        performed_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Set a product's quantity outright.

        Returns ``{product, quantityChange: {previous, current, difference,
        reason}, transaction}``; ``transaction`` is None when the quantity did
        not change.
        """
        performed_by = performed_by or self.settings.DEFAULT_ACTOR
        if quantity is None or quantity < 0:
            logger.info(
                "Quantity change rejected",
                extra={'extra_fields': {'product_id': product_id, 'quantity': quantity, 'error': 'InvalidOperationError'}}
            )
            raise InvalidOperationError(
                "Quantity cannot be negative",
                details=[{"field": "quantity", "message": "must be zero or greater", "value": quantity}],
            )

        transaction = None
        try:
            product = self._lock(product_id)
            previous = product.quantity
            if quantity != previous:
                product.quantity = quantity
                self.db.flush()
                transaction = self.ledger.append(self._quantity_entry(product, previous, reason, performed_by))
        except InventoryError:
            self.db.rollback()
            raise
        commit(self.db)

        logger.info(
            "Product quantity updated",
            extra={'extra_fields': {'product_id': product_id, 'previous': previous, 'current': quantity}}
        )
        return {
            "product": product,
            "quantityChange": {
                "previous": previous,
                "current": quantity,
                "difference": quantity - previous,
                "reason": reason,
            },
            "transaction": transaction,
        }

    def bulk_update_quantities(self, updates: List[Dict[str, Any]],
                               performed_by: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        results = {"successful": [], "failed": []}
        for update in updates:
            product_id = update.get("product_id")
            try:
                result = self.update_quantity(
                    product_id, update.get("quantity"), update.get("reason") or "Bulk update", performed_by
                )
                results["successful"].append({"productId": product_id, "result": result})
            except InventoryError as exc:
                logger.warning(
                    "Bulk quantity entry failed",
                    extra={'extra_fields': {'product_id': product_id, 'error': exc.message}}
                )
                results["failed"].append({"productId": product_id, "error": exc.message})
        return results

    def record_movement(self, product_id: int, transaction_type: str, quantity: int, reason: str,
                        performed_by: Optional[str] = None, unit_cost=None, reference: Optional[str] = None,
                        location: Optional[str] = None, notes: Optional[str] = None,
                        supplier_id: Optional[int] = None) -> Dict[str, Any]:
        """Apply a typed stock movement and record it in the ledger."""
        performed_by = performed_by or self.settings.DEFAULT_ACTOR
        try:
            transaction_type = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError.for_field("type", "Unknown transaction type", transaction_type)
        if not quantity:
            raise ValidationError.for_field("quantity", "quantity must be non-zero", quantity)

        try:
            product = self._lock(product_id)
            previous = product.quantity
            signed = effective_quantity(transaction_type, quantity)
            if previous + signed < 0:
                raise InvalidOperationError(
                    f"Insufficient stock: {previous} available, {abs(signed)} requested",
                    details=[{"field": "quantity", "message": "would drive stock below zero", "value": quantity}],
                )
            product.quantity = previous + signed
            self.db.flush()
            transaction = self.ledger.append({
                "product_id": product.id,
                "type": transaction_type,
                "quantity": signed,
                "previous_quantity": previous,
                "new_quantity": product.quantity,
                "reason": reason,
                "performed_by": performed_by,
                "unit_cost": unit_cost,
                "reference": reference,
                "location": location,
                "notes": notes,
                "supplier_id": supplier_id,
            })
        except InventoryError as exc:
            self.db.rollback()
            logger.info(
                "Stock movement rejected",
                extra={'extra_fields': {'product_id': product_id, 'type': transaction_type.value, 'error': exc.kind}}
            )
            raise
        commit(self.db)

        logger.info(
            "Stock movement recorded",
            extra={'extra_fields': {
                'product_id': product_id, 'type': transaction_type.value,
                'previous': previous, 'current': product.quantity,
            }}
        )
        return {"product": product, "transaction": transaction}

    # Queries

    def list(self, status: Optional[str] = None, category_id: Optional[int] = None,
             supplier_id: Optional[int] = None, options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(Product)
        if status:
            query = query.filter(Product.status == status)
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        if supplier_id is not None:
            query = query.filter(Product.supplier_id == supplier_id)
        return paginate(query, Product, options or QueryOptions())

    @staticmethod
    def _text_filter(term: str):
        pattern = f"%{term}%"
        return or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
        )

    def search(self, term: str, options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(Product).filter(
            Product.status == ProductStatus.ACTIVE.value, self._text_filter(term)
        )
        return paginate(query, Product, options or QueryOptions(sort=[("name", "asc")]))

    def advanced_search(self, filters: Dict[str, Any], options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(Product).filter(
            Product.status == (filters.get("status") or ProductStatus.ACTIVE.value)
        )
        if filters.get("search"):
            query = query.filter(self._text_filter(filters["search"]))
        if filters.get("category_id") is not None:
            query = query.filter(Product.category_id == filters["category_id"])
        if filters.get("supplier_id") is not None:
            query = query.filter(Product.supplier_id == filters["supplier_id"])
        if filters.get("min_price") is not None:
            query = query.filter(Product.price >= filters["min_price"])
        if filters.get("max_price") is not None:
            query = query.filter(Product.price <= filters["max_price"])
        if filters.get("min_quantity") is not None:
            query = query.filter(Product.quantity >= filters["min_quantity"])
        if filters.get("max_quantity") is not None:
            query = query.filter(Product.quantity <= filters["max_quantity"])

        stock_status = filters.get("stock_status")
        if stock_status == "in_stock":
            query = query.filter(Product.quantity > Product.low_stock_threshold)
        elif stock_status == "low_stock":
            query = query.filter(and_(Product.quantity > 0, Product.quantity <= Product.low_stock_threshold))
        elif stock_status == "out_of_stock":
            query = query.filter(Product.quantity == 0)
        elif stock_status:
            raise ValidationError.for_field(
                "stock_status", "stock_status must be in_stock, low_stock or out_of_stock", stock_status
            )
        return paginate(query, Product, options or QueryOptions())

    def get_low_stock_products(self, options: Optional[QueryOptions] = None,
                               include_out_of_stock: bool = True) -> Page:
        query = self.db.query(Product).filter(
            Product.status == ProductStatus.ACTIVE.value,
            Product.quantity <= Product.low_stock_threshold,
        )
        if not include_out_of_stock:
            query = query.filter(Product.quantity > 0)
        return paginate(query, Product, options or QueryOptions(sort=[("quantity", "asc"), ("name", "asc")]))

    def get_out_of_stock_products(self, options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(Product).filter(
            Product.status == ProductStatus.ACTIVE.value, Product.quantity == 0
        )
        return paginate(query, Product, options or QueryOptions(sort=[("updated_at", "desc"), ("id", "desc")]))

    def get_recently_added(self, days: int = 7, options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(Product).filter(
            Product.status == ProductStatus.ACTIVE.value,
            Product.created_at >= utcnow() - timedelta(days=days),
        )
        return paginate(query, Product, options or QueryOptions())

    def get_inventory_stats(self) -> Dict[str, Any]:
        row = self.db.query(
            func.count(Product.id),
            func.sum(Product.quantity),
            func.sum(Product.quantity * Product.price),
            func.avg(Product.price),
            func.sum(case((Product.quantity <= Product.low_stock_threshold, 1), else_=0)),
            func.sum(case((Product.quantity == 0, 1), else_=0)),
        ).filter(Product.status == ProductStatus.ACTIVE.value).one()
        return {
            "totalProducts": row[0] or 0,
            "totalQuantity": int(row[1] or 0),
            "totalValue": round(float(row[2] or 0), 2),
            "averagePrice": round(float(row[3] or 0), 2),
            "lowStockProducts": int(row[4] or 0),
            "outOfStockProducts": int(row[5] or 0),
        }

    def get_category_breakdown(self) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(
                Category.id,
                Category.name,
                func.count(Product.id),
                func.sum(Product.quantity),
                func.sum(Product.quantity * Product.price),
                func.avg(Product.price),
            )
            .select_from(Product)
            .outerjoin(Category, Category.id == Product.category_id)
            .filter(Product.status == ProductStatus.ACTIVE.value)
            .group_by(Category.id, Category.name)
            .order_by(func.count(Product.id).desc())
            .all()
        )
        return [
            {
                "categoryId": category_id,
                "category": name or "Uncategorized",
                "productCount": count,
                "totalQuantity": int(quantity or 0),
                "totalValue": round(float(value or 0), 2),
                "averagePrice": round(float(average or 0), 2),
            }
            for category_id, name, count, quantity, value, average in rows
        ]

    def get_transactions(self, product_id: int, options: Optional[QueryOptions] = None) -> Page:
        self.get(product_id)
        return self.ledger.get_product_transactions(product_id, options)

    def get_ledger_balance(self, product_id: int) -> Dict[str, Any]:
        """Compare the stored quantity with the sum of the product's ledger entries."""
        product = self.get(product_id)
        total = (
            self.db.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0))
            .filter(InventoryTransaction.product_id == product_id)
            .scalar()
        )
        return {
            "productId": product_id,
            "quantity": product.quantity,
            "ledgerQuantity": int(total),
            "consistent": int(total) == product.quantity,
        }
