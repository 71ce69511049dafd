"""Registry snapshots with atomic writes to data/state.json."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from wagerbot.exceptions import PersistenceFailureError
from wagerbot.tickets.models import TicketState
from wagerbot.tickets.registry import TicketRegistry

from .files import atomic_write_json, read_json
from .ledger import IdempotencyLedger

logger = logging.getLogger(__name__)

ATTENTION_STATES = (TicketState.AWAITING_PAYMENT_ADDRESS, TicketState.PAYMENT_SENT)


class PersistenceManager:
    """Saves registry snapshots, coalescing bursts of save requests.

    While a write is in flight further requests only set a dirty flag; the
    writer then performs exactly one follow-up write with the latest state.
    """

    def __init__(
        self,
        path: Path,
        registry: TicketRegistry,
        ledger: IdempotencyLedger | None = None,
    ):
        self.path = path
        self.registry = registry
        self.ledger = ledger
        self._saving = False
        self._dirty = False
        self._task: asyncio.Task | None = None
        self.saves = 0

    def build_document(self) -> dict[str, Any]:
        document = {"savedAt": datetime.now(timezone.utc).isoformat()}
        document.update(self.registry.snapshot())
        return document

    def request_save(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.save_sync()
            return

        if self._saving:
            self._dirty = True
            return
        self._saving = True
        self._task = loop.create_task(self._save_loop())

    async def _save_loop(self) -> None:
        try:
            while True:
                self._dirty = False
                document = self.build_document()
                try:
                    await asyncio.to_thread(atomic_write_json, self.path, document)
                    self.saves += 1
                except PersistenceFailureError as e:
                    logger.error(f"State save failed, continuing: {e}")
                if not self._dirty:
                    break
        finally:
            self._saving = False

    async def flush(self) -> None:
        """Wait for any in-flight save (and its follow-up) to finish."""
        if self._task is not None:
            await self._task

    def save_sync(self) -> bool:
        try:
            atomic_write_json(self.path, self.build_document())
            self.saves += 1
            return True
        except PersistenceFailureError as e:
            logger.error(f"Synchronous state save failed: {e}")
            return False

    def load(self) -> bool:
        """Populate the registry from disk; returns False on a clean start."""
        document = read_json(self.path)
        if document is None:
            logger.info(f"State file not found: {self.path}. Starting clean.")
            loaded = False
        else:
            self.registry.restore(document)
            logger.info(f"Loaded state saved at {document.get('savedAt')}")
            loaded = True

            for ticket in self.registry.tickets():
                if ticket.state in ATTENTION_STATES:
                    logger.warning(
                        f"Ticket {ticket.channel_id} recovered in {ticket.state.value}; "
                        "check payment status"
                    )

        if self.ledger is not None:
            self.ledger.reconcile()
        return loaded
