from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inventory_api.application.product_service import ProductService
from inventory_api.application.query import Page, QueryOptions
from inventory_api.application.schemas import (
    BulkQuantityUpdate, MovementCreate, ProductCreate, ProductRead, ProductUpdate, QuantityUpdate,
    StockStatusFilter, TransactionRead,
)
from inventory_api.application.transaction_service import TransactionService
from inventory_api.infrastructure.db import get_db
from .deps import get_actor, get_query_options

router = APIRouter(prefix="/products", tags=["products"])


def product_page(page: Page) -> Dict[str, Any]:
    return {
        "documents": [ProductRead.model_validate(p) for p in page.documents],
        "pagination": page.pagination,
    }


def quantity_result(result: Dict[str, Any]) -> Dict[str, Any]:
    transaction = result.get("transaction")
    return {
        **result,
        "product": ProductRead.model_validate(result["product"]),
        "transaction": TransactionRead.model_validate(transaction) if transaction is not None else None,
    }


@router.get("/")
def list_products(
    status: Optional[str] = None,
    category_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    options: QueryOptions = Depends(get_query_options),
    db: Session = Depends(get_db),
):
    return product_page(ProductService(db).list(status, category_id, supplier_id, options))

@router.get("/search")
def search_products(q: str = Query(min_length=1), options: QueryOptions = Depends(get_query_options),
                    db: Session = Depends(get_db)):
    return product_page(ProductService(db).search(q, options))

@router.get("/advanced-search")
def advanced_search(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    min_quantity: Optional[int] = None,
    max_quantity: Optional[int] = None,
    stock_status: Optional[StockStatusFilter] = None,
    status: Optional[str] = None,
    options: QueryOptions = Depends(get_query_options),
    db: Session = Depends(get_db),
):
    filters = {
        "search": search, "category_id": category_id, "supplier_id": supplier_id,
        "min_price": min_price, "max_price": max_price,
        "min_quantity": min_quantity, "max_quantity": max_quantity,
        "stock_status": stock_status, "status": status,
    }
    return product_page(ProductService(db).advanced_search(filters, options))

@router.get("/low-stock")
def low_stock_products(options: QueryOptions = Depends(get_query_options), db: Session = Depends(get_db)):
    return product_page(ProductService(db).get_low_stock_products(options))

@router.get("/out-of-stock")
def out_of_stock_products(options: QueryOptions = Depends(get_query_options), db: Session = Depends(get_db)):
    return product_page(ProductService(db).get_out_of_stock_products(options))

@router.get("/recent")
def recently_added(days: int = Query(7, ge=1), options: QueryOptions = Depends(get_query_options),
                   db: Session = Depends(get_db)):
    return product_page(ProductService(db).get_recently_added(days, options))

@router.get("/stats")
def inventory_stats(db: Session = Depends(get_db)):
    return ProductService(db).get_inventory_stats()

@router.get("/category-breakdown")
def category_breakdown(db: Session = Depends(get_db)):
    return ProductService(db).get_category_breakdown()

@router.patch("/bulk-quantity")
def bulk_update_quantities(payload: BulkQuantityUpdate, actor: str = Depends(get_actor),
                           db: Session = Depends(get_db)):
    results = ProductService(db).bulk_update_quantities(
        [item.model_dump() for item in payload.updates], performed_by=actor
    )
    return {
        "successful": [
            {"productId": entry["productId"], "result": quantity_result(entry["result"])}
            for entry in results["successful"]
        ],
        "failed": results["failed"],
    }

@router.post("/", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, actor: str = Depends(get_actor), db: Session = Depends(get_db)):
    return ProductService(db).create(payload, performed_by=actor)

@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return ProductService(db).get(product_id)

@router.put("/{product_id}", response_model=ProductRead)
def update_product(product_id: int, payload: ProductUpdate, actor: str = Depends(get_actor),
                   db: Session = Depends(get_db)):
    return ProductService(db).update(product_id, payload, performed_by=actor)

@router.delete("/{product_id}", response_model=ProductRead)
def delete_product(product_id: int, db: Session = Depends(get_db)):
    """Soft delete: the product is marked inactive and keeps its ledger history."""
    return ProductService(db).soft_delete(product_id)

@router.patch("/{product_id}/quantity")
def update_quantity(product_id: int, payload: QuantityUpdate, actor: str = Depends(get_actor),
                    db: Session = Depends(get_db)):
    result = ProductService(db).update_quantity(product_id, payload.quantity, payload.reason, performed_by=actor)
    return quantity_result(result)

@router.post("/{product_id}/transactions", status_code=201)
def record_movement(product_id: int, payload: MovementCreate, actor: str = Depends(get_actor),
                    db: Session = Depends(get_db)):
    result = ProductService(db).record_movement(
        product_id,
        payload.type,
        payload.quantity,
        payload.reason,
        performed_by=actor,
        unit_cost=payload.unit_cost,
        reference=payload.reference,
        location=payload.location,
        notes=payload.notes,
        supplier_id=payload.supplier_id,
    )
    return quantity_result(result)

@router.get("/{product_id}/transactions")
def product_transactions(product_id: int, options: QueryOptions = Depends(get_query_options),
                         db: Session = Depends(get_db)):
    page = ProductService(db).get_transactions(product_id, options)
    return {
        "documents": [TransactionRead.model_validate(t) for t in page.documents],
        "pagination": page.pagination,
    }

@router.get("/{product_id}/movements")
def product_movements(product_id: int, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                      db: Session = Depends(get_db)):
    ProductService(db).get(product_id)
    return TransactionService(db).get_inventory_movements(product_id, start_date, end_date)

@router.get("/{product_id}/audit-trail")
def product_audit_trail(product_id: int, limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    ProductService(db).get(product_id)
    return TransactionService(db).get_product_audit_trail(product_id, limit)

@router.get("/{product_id}/ledger-balance")
def ledger_balance(product_id: int, db: Session = Depends(get_db)):
    return ProductService(db).get_ledger_balance(product_id)
