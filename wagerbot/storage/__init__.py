"""Storage layer - atomic JSON persistence.

This package provides:
- Registry snapshots (data/state.json) with coalesced async saves
- The idempotency ledger for payments (data/idempotency.json)
- Atomic temp-file-then-rename JSON writes
"""

from .files import atomic_write_json, read_json
from .ledger import (
    IdempotencyLedger,
    PaymentRecord,
    PaymentState,
    SendCheck,
    make_payment_id,
)
from .state import PersistenceManager

__all__ = [
    "atomic_write_json",
    "read_json",
    "IdempotencyLedger",
    "PaymentRecord",
    "PaymentState",
    "SendCheck",
    "make_payment_id",
    "PersistenceManager",
]
