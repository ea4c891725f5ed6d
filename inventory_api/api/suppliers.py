from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inventory_api.application.errors import NotFoundError
from inventory_api.application.query import Page, QueryOptions
from inventory_api.application.schemas import (
    CreditLimitUpdate, RatingUpdate, SupplierCreate, SupplierRead, SupplierStatusUpdate, SupplierUpdate,
)
from inventory_api.application.supplier_service import SupplierService
from inventory_api.infrastructure.db import get_db
from .deps import get_query_options

router = APIRouter(prefix="/suppliers", tags=["suppliers"])


def supplier_page(page: Page) -> Dict[str, Any]:
    return {"documents": [SupplierRead.model_validate(s) for s in page.documents], "pagination": page.pagination}


@router.get("/")
def list_suppliers(status: Optional[str] = None, options: QueryOptions = Depends(get_query_options),
                   db: Session = Depends(get_db)):
    return supplier_page(SupplierService(db).list(status, options))

@router.get("/search")
def search_suppliers(q: str = Query(min_length=1), options: QueryOptions = Depends(get_query_options),
                     db: Session = Depends(get_db)):
    return supplier_page(SupplierService(db).search(q, options))

@router.get("/advanced-search")
def advanced_search_suppliers(
    search: Optional[str] = None,
    status: Optional[str] = None,
    payment_terms: Optional[str] = None,
    location: Optional[str] = None,
    min_rating: Optional[float] = None,
    max_rating: Optional[float] = None,
    min_credit_limit: Optional[Decimal] = None,
    max_credit_limit: Optional[Decimal] = None,
    options: QueryOptions = Depends(get_query_options),
    db: Session = Depends(get_db),
):
    filters = {
        "search": search, "status": status, "payment_terms": payment_terms, "location": location,
        "min_rating": min_rating, "max_rating": max_rating,
        "min_credit_limit": min_credit_limit, "max_credit_limit": max_credit_limit,
    }
    return supplier_page(SupplierService(db).advanced_search(filters, options))

@router.get("/payment-terms/{payment_terms}")
def suppliers_by_payment_terms(payment_terms: str, options: QueryOptions = Depends(get_query_options),
                               db: Session = Depends(get_db)):
    return supplier_page(SupplierService(db).get_by_payment_terms(payment_terms, options))

@router.get("/rating-range")
def suppliers_by_rating(min_rating: float, max_rating: float = 5,
                        options: QueryOptions = Depends(get_query_options), db: Session = Depends(get_db)):
    return supplier_page(SupplierService(db).get_by_rating_range(min_rating, max_rating, options))

@router.get("/location/{location}")
def suppliers_by_location(location: str, options: QueryOptions = Depends(get_query_options),
                          db: Session = Depends(get_db)):
    return supplier_page(SupplierService(db).get_by_location(location, options))

@router.get("/top-rated", response_model=List[SupplierRead])
def top_rated_suppliers(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    return SupplierService(db).get_top_rated(limit)

@router.get("/stats")
def supplier_stats(db: Session = Depends(get_db)):
    return SupplierService(db).get_supplier_stats()

@router.get("/code/{code}", response_model=SupplierRead)
def supplier_by_code(code: str, db: Session = Depends(get_db)):
    supplier = SupplierService(db).find_by_code(code)
    if not supplier:
        raise NotFoundError("Supplier", code)
    return supplier

@router.patch("/bulk-status")
def bulk_update_status(payload: SupplierStatusUpdate, db: Session = Depends(get_db)):
    return SupplierService(db).bulk_update_status(payload.supplier_ids, payload.status, payload.reason)

@router.post("/", response_model=SupplierRead, status_code=201)
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_db)):
    return SupplierService(db).create(payload)

@router.get("/{supplier_id}", response_model=SupplierRead)
def get_supplier(supplier_id: int, db: Session = Depends(get_db)):
    return SupplierService(db).get(supplier_id)

@router.put("/{supplier_id}", response_model=SupplierRead)
def update_supplier(supplier_id: int, payload: SupplierUpdate, db: Session = Depends(get_db)):
    return SupplierService(db).update(supplier_id, payload)

@router.delete("/{supplier_id}", response_model=SupplierRead)
def delete_supplier(supplier_id: int, db: Session = Depends(get_db)):
    return SupplierService(db).delete(supplier_id)

@router.patch("/{supplier_id}/rating")
def update_rating(supplier_id: int, payload: RatingUpdate, db: Session = Depends(get_db)):
    result = SupplierService(db).update_rating(supplier_id, payload.rating, payload.reason)
    return {**result, "supplier": SupplierRead.model_validate(result["supplier"])}

@router.patch("/{supplier_id}/credit-limit")
def update_credit_limit(supplier_id: int, payload: CreditLimitUpdate, db: Session = Depends(get_db)):
    result = SupplierService(db).update_credit_limit(supplier_id, payload.credit_limit, payload.reason)
    return {**result, "supplier": SupplierRead.model_validate(result["supplier"])}
