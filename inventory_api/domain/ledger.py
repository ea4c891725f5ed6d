"""Sign rules for ledger quantities."""

from .models import TransactionType

# Types that always remove stock
OUTBOUND_TYPES = frozenset({
    TransactionType.STOCK_OUT,
    TransactionType.DAMAGED,
    TransactionType.EXPIRED,
    TransactionType.RETURNED,
})

# Types that always add stock
INBOUND_TYPES = frozenset({
    TransactionType.STOCK_IN,
    TransactionType.ADJUSTMENT,
})

# Outbound activity used to estimate the depletion rate
DEPLETION_TYPES = frozenset({
    TransactionType.STOCK_OUT,
    TransactionType.DAMAGED,
    TransactionType.EXPIRED,
})


def effective_quantity(transaction_type: TransactionType, quantity: int) -> int:
    """
    Signed quantity stored for a transaction of ``transaction_type``.

    Outbound types are forced negative and inbound types forced positive
    whatever sign the caller supplied. ``transfer`` keeps the caller's sign:
    negative moves stock out of this location, positive moves it in.
    """
    transaction_type = TransactionType(transaction_type)
    if transaction_type in OUTBOUND_TYPES:
        return -abs(quantity)
    if transaction_type in INBOUND_TYPES:
        return abs(quantity)
    return quantity


def movement_type_for(difference: int) -> TransactionType:
    """Ledger type recording a direct quantity change of ``difference``."""
    return TransactionType.ADJUSTMENT if difference > 0 else TransactionType.STOCK_OUT
