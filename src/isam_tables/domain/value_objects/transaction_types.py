"""Transaction lifecycle states.

A transaction starts ACTIVE and ends in exactly one terminal state:

        begin()
           │
           v
        ACTIVE ──commit()──> COMMITTED
           │
           └──rollback()──> ROLLED_BACK

Leaving a transaction scope while still ACTIVE rolls it back; a
transaction is never committed implicitly.
"""

from __future__ import annotations

from enum import Enum, auto


class TransactionState(Enum):
    """Transaction lifecycle states."""

    ACTIVE = auto()
    """Transaction is open and collects writes."""

    COMMITTED = auto()
    """All writes were applied and are visible to other connections."""

    ROLLED_BACK = auto()
    """All writes were discarded."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (COMMITTED or ROLLED_BACK)."""
        return self in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK)

    def is_active(self) -> bool:
        """Check if the transaction can still perform operations."""
        return self == TransactionState.ACTIVE
