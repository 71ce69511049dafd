"""Durable idempotency ledger for outgoing payments (data/idempotency.json)."""

import hashlib
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from wagerbot.exceptions import PersistenceFailureError
from wagerbot.tickets.models import now_ms

from .files import atomic_write_json, read_json

logger = logging.getLogger(__name__)


class PaymentState(str, Enum):
    PENDING = "PENDING"
    BROADCAST = "BROADCAST"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


LEDGER_TRANSITIONS: dict[PaymentState, frozenset[PaymentState]] = {
    PaymentState.PENDING: frozenset({PaymentState.BROADCAST, PaymentState.FAILED}),
    PaymentState.BROADCAST: frozenset({PaymentState.CONFIRMED, PaymentState.FAILED}),
    PaymentState.CONFIRMED: frozenset(),
    # Retry path; refused once a record has ever been broadcast
    PaymentState.FAILED: frozenset({PaymentState.PENDING}),
}

SPENT_STATES = frozenset({PaymentState.BROADCAST, PaymentState.CONFIRMED})


def make_payment_id(ticket_id: str, address: str, usd_amount: Decimal) -> str:
    """First 16 hex digits of SHA-256 over ``ticket:address:amount``."""
    key = f"{ticket_id}:{address}:{Decimal(usd_amount):.2f}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


class PaymentRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    payment_id: str
    to_address: str
    amount: Decimal
    ticket_id: str
    state: PaymentState = PaymentState.PENDING
    tx_id: str | None = None
    error: str | None = None
    created_at: int
    updated_at: int
    broadcast_at: int | None = None


class SendCheck(BaseModel):
    allowed: bool
    reason: str
    existing_tx_id: str | None = None


class IdempotencyLedger:
    """Payment records keyed by payment id, flushed atomically on every write."""

    def __init__(
        self,
        path: Path,
        clock: Callable[[], int] = now_ms,
        today: Callable[[], date] = date.today,
    ):
        self.path = path
        self._clock = clock
        self._today = today
        self._records: dict[str, PaymentRecord] = {}

    def load(self) -> None:
        raw = read_json(self.path)
        self._records = {}
        if not raw:
            logger.info(f"No idempotency ledger at {self.path}, starting empty")
            return
        for payment_id, record in raw.items():
            self._records[payment_id] = PaymentRecord.model_validate(record)
        logger.info(f"Loaded {len(self._records)} payment records from {self.path}")

    def get(self, payment_id: str) -> PaymentRecord | None:
        return self._records.get(payment_id)

    def records(self) -> list[PaymentRecord]:
        return list(self._records.values())

    def can_send(self, payment_id: str) -> SendCheck:
        record = self._records.get(payment_id)
        if record is None:
            return SendCheck(allowed=True, reason="new payment")
        if record.state in SPENT_STATES:
            return SendCheck(
                allowed=False,
                reason=f"payment already {record.state.value}",
                existing_tx_id=record.tx_id,
            )
        return SendCheck(allowed=True, reason=f"previous attempt {record.state.value}")

    def record_intent(
        self,
        payment_id: str,
        to_address: str,
        amount: Decimal,
        ticket_id: str,
    ) -> bool:
        if payment_id in self._records:
            return False
        now = self._clock()
        self._records[payment_id] = PaymentRecord(
            payment_id=payment_id,
            to_address=to_address,
            amount=Decimal(amount),
            ticket_id=ticket_id,
            created_at=now,
            updated_at=now,
        )
        try:
            self._flush()
        except PersistenceFailureError:
            del self._records[payment_id]
            raise
        logger.info(f"Recorded payment intent {payment_id} (${amount} to {to_address})")
        return True

    def reopen(self, payment_id: str) -> bool:
        """Move a FAILED record that never reached the chain back to PENDING."""
        record = self._records.get(payment_id)
        if record is None or record.state != PaymentState.FAILED:
            return False
        if record.broadcast_at is not None:
            logger.error(
                f"Refusing to retry payment {payment_id}: it was broadcast before failing"
            )
            return False
        return self._move(payment_id, PaymentState.PENDING, error=None)

    def record_broadcast(self, payment_id: str, tx_id: str) -> bool:
        return self._move(
            payment_id, PaymentState.BROADCAST, tx_id=tx_id, broadcast_at=self._clock()
        )

    def record_confirmed(self, payment_id: str) -> bool:
        return self._move(payment_id, PaymentState.CONFIRMED)

    def record_failed(self, payment_id: str, error: str) -> bool:
        return self._move(payment_id, PaymentState.FAILED, error=error, tx_id=None)

    def daily_spend(self) -> Decimal:
        """USD broadcast or confirmed with a creation date of today (local time)."""
        today = self._today()
        total = Decimal("0")
        for record in self._records.values():
            if record.state not in SPENT_STATES:
                continue
            if datetime.fromtimestamp(record.created_at / 1000).date() == today:
                total += record.amount
        return total

    def reconcile(self) -> dict[str, int]:
        """Report records left mid-flight by a previous run."""
        pending = [r for r in self._records.values() if r.state == PaymentState.PENDING]
        broadcast = [r for r in self._records.values() if r.state == PaymentState.BROADCAST]

        if pending:
            logger.warning(f"{len(pending)} PENDING payments found; safe to retry")
        if broadcast:
            logger.warning(
                f"{len(broadcast)} BROADCAST payments need operator attention: "
                + ", ".join(f"{r.payment_id} (tx {r.tx_id})" for r in broadcast)
            )
        if not pending and not broadcast:
            logger.info("Idempotency ledger reconciled: no payments in flight")
        return {"pending": len(pending), "broadcast": len(broadcast)}

    def _move(self, payment_id: str, to_state: PaymentState, **changes) -> bool:
        record = self._records.get(payment_id)
        if record is None:
            logger.error(f"Unknown payment {payment_id}, cannot move to {to_state.value}")
            return False
        if to_state not in LEDGER_TRANSITIONS[record.state]:
            logger.error(
                f"Invalid payment transition for {payment_id}: "
                f"{record.state.value} -> {to_state.value}"
            )
            return False

        updated = record.model_copy(
            update={"state": to_state, "updated_at": self._clock(), **changes}
        )
        # In-memory state follows the chain even if the flush fails
        self._records[payment_id] = updated
        self._flush()
        logger.info(f"Payment {payment_id}: {record.state.value} -> {to_state.value}")
        return True

    def _flush(self) -> None:
        data = {
            payment_id: record.model_dump(mode="json", by_alias=True)
            for payment_id, record in self._records.items()
        }
        atomic_write_json(self.path, data)
