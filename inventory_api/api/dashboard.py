from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inventory_api.application.dashboard_service import DashboardService
from inventory_api.infrastructure.db import get_db

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

@router.get("/overview")
def dashboard_overview(days: int = Query(30, ge=1), db: Session = Depends(get_db)):
    return DashboardService(db).get_overview(days)

@router.get("/inventory-overview")
def inventory_overview(db: Session = Depends(get_db)):
    return DashboardService(db).get_inventory_overview()

@router.get("/sales-analytics")
def sales_analytics(days: int = Query(30, ge=1), group_by: str = "day", limit: int = Query(10, ge=1, le=100),
                    db: Session = Depends(get_db)):
    return DashboardService(db).get_sales_analytics(days, group_by, limit)

@router.get("/alerts")
def dashboard_alerts(severity: Optional[str] = None, limit: int = Query(50, ge=1, le=500),
                     db: Session = Depends(get_db)):
    return DashboardService(db).get_alerts(severity, limit)
