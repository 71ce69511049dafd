"""Payout reception sweep for won tickets."""

import logging
from collections import OrderedDict
from decimal import Decimal

import httpx

from wagerbot.betting import pot_of
from wagerbot.exceptions import WagerBotError
from wagerbot.services.prices import PriceOracle
from wagerbot.services.wallets import Receipt, Wallet
from wagerbot.tickets import Ticket, TicketRegistry, TicketState

from .ticket_handler import TicketHandler

logger = logging.getLogger(__name__)

PROCESSED_CAPACITY = 1000


class PayoutMonitor:
    """Matches incoming wallet receipts against tickets in AWAITING_PAYOUT.

    A receipt settles a ticket when it arrived after the ticket was opened and
    its amount is at least the expected pot less ``tolerance_pct`` percent.
    Each receipt settles at most one ticket.
    """

    def __init__(
        self,
        registry: TicketRegistry,
        handler: TicketHandler,
        wallet: Wallet,
        oracle: PriceOracle,
        network: str,
        tolerance_pct: Decimal = Decimal("5"),
        receipts_limit: int = 20,
        processed_capacity: int = PROCESSED_CAPACITY,
    ):
        self.registry = registry
        self.handler = handler
        self.wallet = wallet
        self.oracle = oracle
        self.network = network
        self.tolerance_pct = Decimal(tolerance_pct)
        self.receipts_limit = receipts_limit
        self.processed_capacity = processed_capacity
        self._processed: OrderedDict[str, None] = OrderedDict()

    def minimum_accepted(self, expected: Decimal) -> Decimal:
        return expected * (1 - self.tolerance_pct / 100)

    async def check(self) -> int:
        """Run one sweep; returns the number of tickets settled."""
        waiting = self.registry.tickets_in_state(TicketState.AWAITING_PAYOUT)
        if not waiting:
            return 0

        claimed = {t.data.payout_tx_id for t in self.registry.tickets() if t.data.payout_tx_id}

        try:
            receipts = await self.wallet.recent_receipts(self.receipts_limit)
        except (WagerBotError, httpx.HTTPError) as e:
            logger.warning(f"Payout check could not list {self.network} receipts: {e}")
            return 0

        settled = 0
        for ticket in sorted(waiting, key=lambda t: t.updated_at):
            receipt = await self._match(ticket, receipts, claimed)
            if receipt is None:
                continue
            if await self.handler.complete_payout(ticket.channel_id, receipt):
                self._remember(receipt.tx_id)
                claimed.add(receipt.tx_id)
                settled += 1

        if settled:
            logger.info(f"Payout check settled {settled} tickets")
        return settled

    def _remember(self, tx_id: str) -> None:
        self._processed[tx_id] = None
        self._processed.move_to_end(tx_id)
        if len(self._processed) > self.processed_capacity:
            self._processed.popitem(last=False)

    async def _match(
        self, ticket: Ticket, receipts: list[Receipt], claimed: set[str]
    ) -> Receipt | None:
        pot = pot_of(ticket.data.opponent_bet, ticket.data.our_bet)
        try:
            expected = await self.oracle.convert_usd_to_crypto(pot, self.network)
        except WagerBotError as e:
            logger.warning(f"Cannot price payout for ticket {ticket.channel_id}: {e}")
            return None

        minimum = self.minimum_accepted(expected)
        for receipt in receipts:
            if receipt.tx_id in self._processed or receipt.tx_id in claimed:
                continue
            if receipt.timestamp.timestamp() * 1000 < ticket.created_at:
                continue
            if receipt.amount >= minimum:
                logger.info(
                    f"Receipt {receipt.tx_id} ({receipt.amount} {self.network}) matches "
                    f"ticket {ticket.channel_id} (expected {expected:.8f})"
                )
                return receipt
        return None
