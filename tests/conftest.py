"""Shared fakes and fixtures."""

import itertools
from decimal import Decimal
from pathlib import Path

import pytest

from wagerbot.bot import (
    AuthorInfo,
    ChannelInfo,
    ChannelOutbox,
    ChatEvent,
    MessageRouter,
    PayoutMonitor,
    Sniper,
    TicketHandler,
)
from wagerbot.config import ChannelsConfig, Settings
from wagerbot.exceptions import ChatTransportError
from wagerbot.payments import PaymentGate
from wagerbot.services.prices import PriceOracle
from wagerbot.services.wallets import Receipt, Wallet, WalletConfig
from wagerbot.storage import IdempotencyLedger
from wagerbot.tickets import TicketRegistry

BOT_ID = "999"
OPPONENT_ID = "222"
MIDDLEMAN_ID = "111"
OWN_LTC = "LdP8Qox1VAhCzLJNqrr74YovaWYyNBUWvL"
MM_LTC = "LY7VX5yZgVbEsL3kS9F2a8B4c5D6e7F8g9"


class FakeTransport:
    """Records outbound messages instead of talking to a chat platform."""

    def __init__(self, bot_user_id: str = BOT_ID):
        self._bot_user_id = bot_user_id
        self.sent: list[tuple[str, str, str | None]] = []
        self.fail = False

    @property
    def bot_user_id(self) -> str:
        return self._bot_user_id

    async def send_message(self, channel_id: str, content: str, reply_to: str | None = None) -> None:
        if self.fail:
            raise ChatTransportError(f"cannot send to {channel_id}")
        self.sent.append((channel_id, content, reply_to))


class FakeWallet(Wallet):
    """In-memory wallet: scripted balance, receipts and broadcast outcomes."""

    def __init__(
        self,
        network: str = "LTC",
        address: str = OWN_LTC,
        balance: Decimal = Decimal("100"),
    ):
        self.network = network
        super().__init__(address, WalletConfig(retry_backoff_seconds=0))
        self._balance = balance
        self.balance_error: Exception | None = None
        self.receipts: list[Receipt] = []
        self.errors: list[Exception] = []
        self.broadcasts: list[tuple[str, Decimal]] = []

    async def balance(self) -> Decimal:
        if self.balance_error is not None:
            raise self.balance_error
        return self._balance

    async def recent_receipts(self, limit: int = 20) -> list[Receipt]:
        return self.receipts[:limit]

    async def _broadcast(self, to_address: str, amount: Decimal) -> str:
        if self.errors:
            raise self.errors.pop(0)
        self.broadcasts.append((to_address, amount))
        return f"tx{len(self.broadcasts)}"


class FixedPriceOracle(PriceOracle):
    """Oracle returning a constant price (or raising) without any HTTP."""

    def __init__(self, price: Decimal = Decimal("80"), error: Exception | None = None):
        super().__init__()
        self.price = price
        self.error = error
        self.calls = 0

    async def price_of(self, network: str) -> Decimal:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.price


def make_settings(data_dir: Path, **overrides) -> Settings:
    values = {
        "data_dir": data_dir,
        "middleman_ids": [MIDDLEMAN_ID],
        "monitored_channels": ["public"],
        "payout_addresses": {"LTC": OWN_LTC},
        "channels": ChannelsConfig(vouch_channel_id="vouch"),
        "channel_send_gap_ms": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class Harness:
    """The message-handling stack wired together with fakes at the edges."""

    def __init__(self, data_dir: Path, **overrides):
        self.settings = make_settings(data_dir, **overrides)
        self.transport = FakeTransport()
        self.registry = TicketRegistry(
            pending_wager_ttl_ms=self.settings.pending_wager_ttl_ms,
            cooldown_ms=self.settings.bet_cooldown_ms,
        )
        self.ledger = IdempotencyLedger(self.settings.ledger_path)
        self.wallet = FakeWallet()
        self.oracle = FixedPriceOracle()
        self.gate = PaymentGate.from_settings(self.settings, self.ledger, self.oracle, self.wallet)
        self.outbox = ChannelOutbox(self.transport, gap_ms=0)
        self.rolls: list[int] = []
        self.handler = TicketHandler(
            self.settings,
            self.registry,
            self.gate,
            self.oracle,
            self.outbox,
            self.transport,
            roll=self._next_roll,
        )
        self.sniper = Sniper(self.settings, self.registry, self.outbox)
        self.router = MessageRouter(
            self.settings,
            self.transport,
            self.registry,
            self.handler,
            self.sniper,
            self.outbox,
        )
        self.monitor = PayoutMonitor(
            self.registry,
            self.handler,
            self.wallet,
            self.oracle,
            network="LTC",
            tolerance_pct=self.settings.payout_tolerance_pct,
        )
        self._ids = itertools.count(1)

    def _next_roll(self) -> int:
        return self.rolls.pop(0) if self.rolls else 6

    def event(
        self,
        content: str,
        author: str = OPPONENT_ID,
        channel: str = "t1",
        channel_name: str = "ticket-opp",
        username: str = "opp",
        bot: bool = False,
        mentions: list[str] | None = None,
        channel_type: str = "text",
    ) -> ChatEvent:
        return ChatEvent(
            id=f"m{next(self._ids)}",
            channel=ChannelInfo(id=channel, name=channel_name, type=channel_type),
            author=AuthorInfo(id=author, username=username, bot=bot),
            content=content,
            mentions=mentions or [],
        )

    async def say(self, content: str, **kwargs) -> bool:
        return await self.router.route(self.event(content, **kwargs))

    def sent(self, channel: str | None = None) -> list[str]:
        return [text for cid, text, _ in self.transport.sent if channel is None or cid == channel]

    def ticket(self, channel: str = "t1"):
        return self.registry.get_ticket(channel)


@pytest.fixture
def harness(tmp_path: Path) -> Harness:
    return Harness(tmp_path)


@pytest.fixture
def make_harness(tmp_path: Path):
    def factory(**overrides) -> Harness:
        return Harness(tmp_path, **overrides)

    return factory
