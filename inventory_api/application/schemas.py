from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from inventory_api.domain.models import (
    CategoryStatus, PaymentTerms, ProductStatus, SupplierStatus, TransactionType,
)

StockStatusFilter = Literal["in_stock", "low_stock", "out_of_stock"]


# Categories

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    parent_id: Optional[int] = None
    sort_order: int = Field(default=0, ge=0)
    status: CategoryStatus = CategoryStatus.ACTIVE

class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    # Present in the payload (even as null) means re-parent
    parent_id: Optional[int] = None
    sort_order: Optional[int] = Field(default=None, ge=0)
    status: Optional[CategoryStatus] = None

class CategoryRead(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    level: int
    path: str
    sort_order: int
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class CategoryMove(BaseModel):
    parent_id: Optional[int] = None
    sort_order: Optional[int] = Field(default=None, ge=0)

class CategoryOrder(BaseModel):
    category_id: int
    sort_order: int = Field(ge=0)

class CategoryReorder(BaseModel):
    orders: List[CategoryOrder] = Field(min_length=1)


# Suppliers

class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=30)
    website: Optional[str] = Field(default=None, max_length=255)
    street: Optional[str] = Field(default=None, max_length=100)
    city: Optional[str] = Field(default=None, max_length=50)
    state: Optional[str] = Field(default=None, max_length=50)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    country: str = Field(default="USA", max_length=50)
    payment_terms: PaymentTerms = PaymentTerms.NET_30
    credit_limit: Decimal = Field(default=Decimal("0"), ge=0)
    tax_id: Optional[str] = Field(default=None, max_length=50)
    status: SupplierStatus = SupplierStatus.ACTIVE
    rating: Optional[float] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("rating")
    @classmethod
    def half_step_rating(cls, v):
        if v is not None and (v * 2) != int(v * 2):
            raise ValueError("rating must be in steps of 0.5")
        return v

class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=30)
    website: Optional[str] = Field(default=None, max_length=255)
    street: Optional[str] = Field(default=None, max_length=100)
    city: Optional[str] = Field(default=None, max_length=50)
    state: Optional[str] = Field(default=None, max_length=50)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=50)
    payment_terms: Optional[PaymentTerms] = None
    tax_id: Optional[str] = Field(default=None, max_length=50)
    status: Optional[SupplierStatus] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

class SupplierRead(BaseModel):
    id: int
    name: str
    code: str
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str
    payment_terms: str
    credit_limit: float
    tax_id: Optional[str] = None
    status: str
    rating: Optional[float] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class RatingUpdate(BaseModel):
    rating: float
    reason: str = ""

class CreditLimitUpdate(BaseModel):
    credit_limit: Decimal
    reason: str = "Manual adjustment"

class SupplierStatusUpdate(BaseModel):
    supplier_ids: List[int] = Field(min_length=1)
    status: str
    reason: str = ""


# Products

class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    sku: Optional[str] = Field(default=None, max_length=50)
    barcode: Optional[str] = Field(default=None, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Decimal = Field(ge=0)
    quantity: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=5, ge=0)
    category_id: Optional[int] = None
    supplier_id: Optional[int] = None
    status: ProductStatus = ProductStatus.ACTIVE

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    barcode: Optional[str] = Field(default=None, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Optional[Decimal] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    supplier_id: Optional[int] = None
    status: Optional[ProductStatus] = None
    reason: Optional[str] = Field(default=None, max_length=200)

class ProductRead(BaseModel):
    id: int
    name: str
    sku: str
    barcode: Optional[str] = None
    description: Optional[str] = None
    price: float
    quantity: int
    low_stock_threshold: int
    category_id: Optional[int] = None
    supplier_id: Optional[int] = None
    status: str
    stock_status: str
    total_value: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class QuantityUpdate(BaseModel):
    quantity: int
    reason: str = "Manual adjustment"

class BulkQuantityItem(BaseModel):
    product_id: int
    quantity: int
    reason: Optional[str] = None

class BulkQuantityUpdate(BaseModel):
    updates: List[BulkQuantityItem] = Field(min_length=1)

class MovementCreate(BaseModel):
    type: TransactionType
    quantity: int
    reason: str = Field(min_length=1, max_length=200)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    reference: Optional[str] = Field(default=None, max_length=50)
    location: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)
    supplier_id: Optional[int] = None


# Ledger

class TransactionCreate(BaseModel):
    """Raw ledger entry; required fields are checked by the ledger itself"""
    product_id: Optional[int] = None
    type: Optional[str] = None
    quantity: Optional[int] = None
    previous_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    unit_cost: Optional[Decimal] = None
    reason: Optional[str] = None
    performed_by: Optional[str] = None
    reference: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    supplier_id: Optional[int] = None

class BulkTransactionCreate(BaseModel):
    transactions: List[TransactionCreate] = Field(min_length=1)

class TransactionRead(BaseModel):
    id: int
    product_id: int
    type: str
    quantity: int
    previous_quantity: int
    new_quantity: int
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    reason: str
    reference: Optional[str] = None
    supplier_id: Optional[int] = None
    performed_by: str
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    class Config:
        from_attributes = True
