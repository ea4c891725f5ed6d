"""
ORM-level immutability for the inventory ledger.

Ledger rows are written once. Corrections are new, reason-annotated
counter-entries, so any UPDATE or DELETE of an ``InventoryTransaction``
through the ORM is rejected before SQL reaches the database.
"""

from sqlalchemy import event

from inventory_api.application.errors import InvalidOperationError
from inventory_api.domain.models import InventoryTransaction
from shared.core import get_logger

logger = get_logger(__name__, component="ledger")


def _reject_ledger_update(mapper, connection, target):
    logger.error(
        "Ledger mutation blocked",
        extra={'extra_fields': {'entity_id': target.id, 'operation': 'UPDATE'}},
    )
    raise InvalidOperationError(
        f"Inventory transaction {target.id} is immutable; record a counter-entry instead"
    )


def _reject_ledger_delete(mapper, connection, target):
    logger.error(
        "Ledger deletion blocked",
        extra={'extra_fields': {'entity_id': target.id, 'operation': 'DELETE'}},
    )
    raise InvalidOperationError(
        f"Inventory transaction {target.id} cannot be deleted"
    )


def register_immutability_listeners() -> None:
    if not event.contains(InventoryTransaction, "before_update", _reject_ledger_update):
        event.listen(InventoryTransaction, "before_update", _reject_ledger_update)
    if not event.contains(InventoryTransaction, "before_delete", _reject_ledger_delete):
        event.listen(InventoryTransaction, "before_delete", _reject_ledger_delete)
