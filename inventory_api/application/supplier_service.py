from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from inventory_api.domain.models import PaymentTerms, Supplier, SupplierStatus
from shared.core import get_logger
from .errors import DuplicateError, NotFoundError, ValidationError
from .query import Page, QueryOptions, paginate
from .schemas import SupplierCreate, SupplierUpdate
from .unit_of_work import commit

logger = get_logger(__name__, component="suppliers")


def _rating_value(rating) -> Optional[float]:
    return float(rating) if rating is not None else None


class SupplierService:
    def __init__(self, db: Session):
        self.db = db

    def _generate_code(self, name: str) -> str:
        """Supplier code in format ABC-0001 from the first three letters of the name"""
        prefix = "".join(ch for ch in name if ch.isalpha())[:3].upper() or "SUP"
        count = self.db.query(Supplier).filter(Supplier.code.like(f"{prefix}-%")).count()
        next_num = count + 1
        while self.find_by_code(f"{prefix}-{next_num:04d}"):
            next_num += 1
        return f"{prefix}-{next_num:04d}"

    def get(self, supplier_id: int) -> Supplier:
        supplier = self.db.query(Supplier).filter(Supplier.id == supplier_id).first()
        if not supplier:
            raise NotFoundError("Supplier", supplier_id)
        return supplier

    def find_by_code(self, code: str) -> Optional[Supplier]:
        return self.db.query(Supplier).filter(Supplier.code == code.upper()).first()

    def list(self, status: Optional[str] = None, options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(Supplier)
        if status:
            query = query.filter(Supplier.status == status)
        return paginate(query, Supplier, options or QueryOptions(sort=[("name", "asc")]))

    @staticmethod
    def _text_filter(term: str):
        pattern = f"%{term}%"
        return or_(Supplier.name.ilike(pattern), Supplier.code.ilike(pattern), Supplier.email.ilike(pattern))

    @staticmethod
    def _location_filter(location: str):
        pattern = f"%{location}%"
        return or_(Supplier.city.ilike(pattern), Supplier.state.ilike(pattern), Supplier.country.ilike(pattern))

    @staticmethod
    def _payment_terms(value: str) -> str:
        try:
            return PaymentTerms(value).value
        except ValueError:
            raise ValidationError.for_field(
                "payment_terms", f"payment_terms must be one of: {', '.join(t.value for t in PaymentTerms)}", value
            )

    def _active(self):
        return self.db.query(Supplier).filter(Supplier.status == SupplierStatus.ACTIVE.value)

    def search(self, term: str, options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(Supplier).filter(self._text_filter(term))
        return paginate(query, Supplier, options or QueryOptions(sort=[("name", "asc")]))

    def get_by_payment_terms(self, payment_terms: str, options: Optional[QueryOptions] = None) -> Page:
        query = self._active().filter(Supplier.payment_terms == self._payment_terms(payment_terms))
        return paginate(query, Supplier, options or QueryOptions(sort=[("name", "asc")]))

    def get_by_rating_range(self, min_rating: float, max_rating: float = 5,
                            options: Optional[QueryOptions] = None) -> Page:
        if not 1 <= min_rating <= max_rating <= 5:
            raise ValidationError.for_field(
                "min_rating", "Ratings must satisfy 1 <= min_rating <= max_rating <= 5", min_rating
            )
        query = self._active().filter(Supplier.rating >= min_rating, Supplier.rating <= max_rating)
        return paginate(query, Supplier, options or QueryOptions(sort=[("rating", "desc"), ("name", "asc")]))

    def get_by_location(self, location: str, options: Optional[QueryOptions] = None) -> Page:
        """Active suppliers whose city, state or country contains ``location``"""
        query = self._active().filter(self._location_filter(location))
        return paginate(query, Supplier, options or QueryOptions(sort=[("name", "asc")]))

    def advanced_search(self, filters: Dict[str, Any], options: Optional[QueryOptions] = None) -> Page:
        query = self.db.query(Supplier)
        if filters.get("search"):
            query = query.filter(self._text_filter(filters["search"]))
        if filters.get("status"):
            query = query.filter(Supplier.status == filters["status"])
        if filters.get("payment_terms"):
            query = query.filter(Supplier.payment_terms == self._payment_terms(filters["payment_terms"]))
        if filters.get("location"):
            query = query.filter(self._location_filter(filters["location"]))
        if filters.get("min_rating") is not None:
            query = query.filter(Supplier.rating >= filters["min_rating"])
        if filters.get("max_rating") is not None:
            query = query.filter(Supplier.rating <= filters["max_rating"])
        if filters.get("min_credit_limit") is not None:
            query = query.filter(Supplier.credit_limit >= filters["min_credit_limit"])
        if filters.get("max_credit_limit") is not None:
            query = query.filter(Supplier.credit_limit <= filters["max_credit_limit"])
        return paginate(query, Supplier, options or QueryOptions(sort=[("name", "asc")]))

    def create(self, data: SupplierCreate) -> Supplier:
        values = data.model_dump()
        if values.get("code"):
            values["code"] = values["code"].strip().upper()
            if self.find_by_code(values["code"]):
                raise DuplicateError("code", values["code"])
        else:
            values["code"] = self._generate_code(values["name"])
        values["payment_terms"] = PaymentTerms(values["payment_terms"]).value
        values["status"] = SupplierStatus(values["status"]).value

        supplier = Supplier(**values)
        self.db.add(supplier)
        commit(self.db)
        self.db.refresh(supplier)
        logger.info("Supplier created", extra={'extra_fields': {'supplier_id': supplier.id, 'code': supplier.code}})
        return supplier

    def update(self, supplier_id: int, data: SupplierUpdate) -> Supplier:
        supplier = self.get(supplier_id)
        for name in data.model_fields_set:
            value = getattr(data, name)
            if name in ("name", "country", "payment_terms", "status") and value is None:
                continue
            if name in ("payment_terms", "status"):
                value = value.value
            setattr(supplier, name, value)
        commit(self.db)
        self.db.refresh(supplier)
        logger.info("Supplier updated", extra={'extra_fields': {'supplier_id': supplier.id}})
        return supplier

    def delete(self, supplier_id: int) -> Supplier:
        supplier = self.get(supplier_id)
        supplier.status = SupplierStatus.INACTIVE.value
        commit(self.db)
        logger.info("Supplier deactivated", extra={'extra_fields': {'supplier_id': supplier_id}})
        return supplier

    def update_rating(self, supplier_id: int, rating: float, reason: str = "") -> Dict[str, Any]:
        if rating < 1 or rating > 5 or rating * 2 != int(rating * 2):
            raise ValidationError.for_field("rating", "Rating must be between 1 and 5 in steps of 0.5", rating)
        supplier = self.get(supplier_id)
        previous = _rating_value(supplier.rating)
        supplier.rating = rating
        commit(self.db)
        logger.info(
            "Supplier rating updated",
            extra={'extra_fields': {'supplier_id': supplier_id, 'previous': previous, 'current': rating}}
        )
        return {
            "supplier": supplier,
            "ratingChange": {
                "previous": previous,
                "current": rating,
                "difference": rating - previous if previous is not None else None,
                "reason": reason,
            },
        }

    def update_credit_limit(self, supplier_id: int, credit_limit, reason: str = "Manual adjustment") -> Dict[str, Any]:
        credit_limit = Decimal(str(credit_limit))
        if credit_limit < 0:
            raise ValidationError.for_field("credit_limit", "Credit limit cannot be negative", float(credit_limit))
        supplier = self.get(supplier_id)
        previous = Decimal(supplier.credit_limit or 0)
        supplier.credit_limit = credit_limit
        commit(self.db)
        logger.info(
            "Supplier credit limit updated",
            extra={'extra_fields': {'supplier_id': supplier_id, 'previous': float(previous), 'current': float(credit_limit)}}
        )
        return {
            "supplier": supplier,
            "creditChange": {
                "previous": float(previous),
                "current": float(credit_limit),
                "difference": float(credit_limit - previous),
                "reason": reason,
            },
        }

    def bulk_update_status(self, supplier_ids: List[int], status: str, reason: str = "") -> Dict[str, Any]:
        try:
            status = SupplierStatus(status).value
        except ValueError:
            raise ValidationError.for_field(
                "status", f"Invalid status. Must be one of: {', '.join(s.value for s in SupplierStatus)}", status
            )
        matched = self.db.query(Supplier).filter(Supplier.id.in_(supplier_ids)).all()
        modified = 0
        for supplier in matched:
            if supplier.status != status:
                supplier.status = status
                modified += 1
        commit(self.db)
        logger.info(
            "Supplier status bulk update",
            extra={'extra_fields': {'matched': len(matched), 'modified': modified, 'status': status}}
        )
        return {"matchedCount": len(matched), "modifiedCount": modified, "status": status, "reason": reason}

    def get_top_rated(self, limit: int = 10) -> List[Supplier]:
        return (
            self.db.query(Supplier)
            .filter(Supplier.status == SupplierStatus.ACTIVE.value, Supplier.rating.isnot(None))
            .order_by(Supplier.rating.desc(), Supplier.name.asc())
            .limit(limit)
            .all()
        )

    def get_supplier_stats(self) -> Dict[str, Any]:
        by_status = dict(
            self.db.query(Supplier.status, func.count(Supplier.id)).group_by(Supplier.status).all()
        )
        active = Supplier.status == SupplierStatus.ACTIVE.value
        by_terms = dict(
            self.db.query(Supplier.payment_terms, func.count(Supplier.id))
            .filter(active).group_by(Supplier.payment_terms).all()
        )
        by_country = {
            (country or "Unknown"): count
            for country, count in self.db.query(Supplier.country, func.count(Supplier.id))
            .filter(active).group_by(Supplier.country).order_by(func.count(Supplier.id).desc()).all()
        }
        ratings = self.db.query(
            func.avg(Supplier.rating),
            func.count(Supplier.rating),
            func.sum(case((Supplier.rating >= 4, 1), else_=0)),
            func.sum(case((Supplier.rating < 3, 1), else_=0)),
        ).filter(active).one()
        credit = self.db.query(
            func.sum(Supplier.credit_limit),
            func.avg(Supplier.credit_limit),
            func.max(Supplier.credit_limit),
            func.min(Supplier.credit_limit),
        ).filter(active).one()
        return {
            "total": sum(by_status.values()),
            "byStatus": by_status,
            "byPaymentTerms": by_terms,
            "byLocation": by_country,
            "ratings": {
                "average": round(float(ratings[0] or 0), 2),
                "totalRated": ratings[1] or 0,
                "highRating": int(ratings[2] or 0),
                "lowRating": int(ratings[3] or 0),
            },
            "credit": {
                "total": round(float(credit[0] or 0), 2),
                "average": round(float(credit[1] or 0), 2),
                "max": float(credit[2] or 0),
                "min": float(credit[3] or 0),
            },
        }
