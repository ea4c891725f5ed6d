import os

# Point the service at an in-memory database before anything reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUN_MIGRATIONS"] = "false"

import pytest
from fastapi.testclient import TestClient

from inventory_api.application.category_service import CategoryService
from inventory_api.application.dashboard_service import DashboardService
from inventory_api.application.product_service import ProductService
from inventory_api.application.schemas import CategoryCreate, ProductCreate, SupplierCreate
from inventory_api.application.supplier_service import SupplierService
from inventory_api.application.transaction_service import TransactionService
from inventory_api.infrastructure.db import SessionLocal, drop_models, init_models
from inventory_api.main import app


@pytest.fixture(autouse=True)
def schema():
    init_models()
    yield
    drop_models()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def categories(db):
    return CategoryService(db)


@pytest.fixture
def products(db):
    return ProductService(db)


@pytest.fixture
def suppliers(db):
    return SupplierService(db)


@pytest.fixture
def ledger(db):
    return TransactionService(db)


@pytest.fixture
def dashboard(db):
    return DashboardService(db)


@pytest.fixture
def make_category(categories):
    def _make(name, parent=None, **kwargs):
        parent_id = parent.id if parent is not None else None
        return categories.create(CategoryCreate(name=name, parent_id=parent_id, **kwargs))
    return _make


@pytest.fixture
def make_product(products):
    def _make(name="Widget", price="10.00", quantity=0, **kwargs):
        return products.create(ProductCreate(name=name, price=price, quantity=quantity, **kwargs))
    return _make


@pytest.fixture
def make_supplier(suppliers):
    def _make(name="Acme Supplies", **kwargs):
        return suppliers.create(SupplierCreate(name=name, **kwargs))
    return _make
