from alembic.config import Config
from sqlalchemy import event

from inventory_api.core_settings import Settings
from inventory_api.domain.models import InventoryTransaction
from inventory_api.infrastructure.immutability import _reject_ledger_update, register_immutability_listeners


def test_postgres_url_from_parts():
    settings = Settings(DATABASE_URL=None, POSTGRES_HOST="db", POSTGRES_PASSWORD="secret")
    assert settings.database_url == "postgresql+psycopg2://inventory:secret@db:5432/inventory"


def test_migration_url_survives_alembic_interpolation():
    settings = Settings(DATABASE_URL=None, POSTGRES_PASSWORD="p%40ss%word")

    config = Config()
    config.set_main_option("sqlalchemy.url", settings.migration_url)

    assert config.get_main_option("sqlalchemy.url") == settings.database_url


def test_registering_ledger_listeners_is_idempotent(db, make_product):
    register_immutability_listeners()
    register_immutability_listeners()

    assert event.contains(InventoryTransaction, "before_update", _reject_ledger_update)
    make_product(quantity=1)
    assert db.query(InventoryTransaction).count() == 1
