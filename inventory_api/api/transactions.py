from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inventory_api.application.query import Page, QueryOptions
from inventory_api.application.schemas import BulkTransactionCreate, TransactionCreate, TransactionRead
from inventory_api.application.transaction_service import TransactionService
from inventory_api.domain.models import utcnow
from inventory_api.infrastructure.db import get_db
from .deps import get_actor, get_query_options

router = APIRouter(prefix="/transactions", tags=["transactions"])


def transaction_page(page: Page) -> Dict[str, Any]:
    return {
        "documents": [TransactionRead.model_validate(t) for t in page.documents],
        "pagination": page.pagination,
    }


@router.get("/")
def transaction_history(
    product_id: Optional[int] = None,
    type: Optional[str] = None,
    user: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    min_quantity: Optional[int] = None,
    max_quantity: Optional[int] = None,
    min_cost: Optional[Decimal] = None,
    max_cost: Optional[Decimal] = None,
    reference: Optional[str] = None,
    location: Optional[str] = None,
    options: QueryOptions = Depends(get_query_options),
    db: Session = Depends(get_db),
):
    filters = {
        "product_id": product_id, "type": type, "user": user,
        "start_date": start_date, "end_date": end_date,
        "min_quantity": min_quantity, "max_quantity": max_quantity,
        "min_cost": min_cost, "max_cost": max_cost,
        "reference": reference, "location": location,
    }
    return transaction_page(TransactionService(db).get_transaction_history(filters, options))

@router.post("/", response_model=TransactionRead, status_code=201)
def create_transaction(payload: TransactionCreate, actor: str = Depends(get_actor), db: Session = Depends(get_db)):
    """Append a raw ledger entry; product quantities are changed through /products/{id}/transactions."""
    data = payload.model_dump()
    data["performed_by"] = data.get("performed_by") or actor
    return TransactionService(db).create_transaction(data)

@router.post("/bulk")
def bulk_create_transactions(payload: BulkTransactionCreate, actor: str = Depends(get_actor),
                             db: Session = Depends(get_db)):
    entries = []
    for item in payload.transactions:
        data = item.model_dump()
        data["performed_by"] = data.get("performed_by") or actor
        entries.append(data)
    results = TransactionService(db).bulk_create_transactions(entries)
    return {
        "successful": [TransactionRead.model_validate(t) for t in results["successful"]],
        "failed": results["failed"],
    }

@router.get("/recent")
def recent_transactions(days: int = Query(7, ge=1), options: QueryOptions = Depends(get_query_options),
                        db: Session = Depends(get_db)):
    return transaction_page(TransactionService(db).get_recent_transactions(days, options))

@router.get("/stats")
def transaction_stats(start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                      db: Session = Depends(get_db)):
    end_date = end_date or utcnow()
    start_date = start_date or end_date - timedelta(days=30)
    return TransactionService(db).get_transaction_stats(start_date, end_date)

@router.get("/monthly/{year}/{month}")
def monthly_summary(year: int, month: int, db: Session = Depends(get_db)):
    return TransactionService(db).get_monthly_transaction_summary(year, month)

@router.get("/alerts/low-stock")
def low_stock_alerts(days: Optional[int] = Query(None, ge=1), db: Session = Depends(get_db)):
    return TransactionService(db).get_low_stock_alerts(days)

@router.get("/type/{transaction_type}")
def transactions_by_type(transaction_type: str, options: QueryOptions = Depends(get_query_options),
                         db: Session = Depends(get_db)):
    return transaction_page(TransactionService(db).get_transactions_by_type(transaction_type, options))

@router.get("/user/{user}")
def transactions_by_user(user: str, options: QueryOptions = Depends(get_query_options),
                         db: Session = Depends(get_db)):
    return transaction_page(TransactionService(db).get_transactions_by_user(user, options))

@router.get("/{transaction_id}", response_model=TransactionRead)
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    return TransactionService(db).get_transaction(transaction_id)
