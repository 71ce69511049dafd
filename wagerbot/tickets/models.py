"""Ticket, pending wager and history models persisted in state.json."""

import time
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from wagerbot.game.tracker import Scores


def now_ms() -> int:
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


class TicketState(str, Enum):
    AWAITING_TICKET = "AWAITING_TICKET"
    AWAITING_MIDDLEMAN = "AWAITING_MIDDLEMAN"
    AWAITING_PAYMENT_ADDRESS = "AWAITING_PAYMENT_ADDRESS"
    PAYMENT_SENT = "PAYMENT_SENT"
    AWAITING_GAME_START = "AWAITING_GAME_START"
    GAME_IN_PROGRESS = "GAME_IN_PROGRESS"
    AWAITING_PAYOUT = "AWAITING_PAYOUT"
    GAME_COMPLETE = "GAME_COMPLETE"
    CANCELLED = "CANCELLED"


TERMINAL_STATES = frozenset({TicketState.GAME_COMPLETE, TicketState.CANCELLED})

# Funds are committed; never auto-cancel or auto-remove
MONEY_IN_FLIGHT_STATES = frozenset(
    {
        TicketState.PAYMENT_SENT,
        TicketState.GAME_IN_PROGRESS,
        TicketState.AWAITING_PAYOUT,
    }
)

PRE_PAYMENT_STATES = frozenset(
    {
        TicketState.AWAITING_TICKET,
        TicketState.AWAITING_MIDDLEMAN,
        TicketState.AWAITING_PAYMENT_ADDRESS,
    }
)


class HistoryEntry(CamelModel):
    from_state: TicketState = Field(alias="from")
    to: TicketState
    at: int
    data: dict[str, Any] = Field(default_factory=dict)


class TicketData(CamelModel):
    """Mutable per-ticket facts; bets are USD."""

    opponent_id: str | None = None
    opponent_bet: Decimal = Field(default=Decimal("0"), ge=0)
    our_bet: Decimal = Field(default=Decimal("0"), ge=0)
    middleman_id: str | None = None
    payment_address: str | None = None
    payment_tx_id: str | None = None
    payment_locked: bool = False
    game_scores: Scores = Field(default_factory=Scores)
    tracker_state: dict[str, Any] | None = None
    bot_goes_first: bool = False
    winner: str | None = None
    payout_tx_id: str | None = None
    payout_amount: Decimal | None = None
    auto_detected: bool = False
    source_channel_id: str | None = None
    cancellation_reason: str | None = None

    @property
    def has_bet(self) -> bool:
        return self.opponent_bet > 0 and self.our_bet > 0


class PendingWager(CamelModel):
    """Accepted public offer waiting for its ticket channel."""

    user_id: str
    username: str = ""
    opponent_bet: Decimal = Field(gt=0)
    our_bet: Decimal = Field(gt=0)
    source_channel_id: str
    timestamp: int = Field(default_factory=now_ms)
    message_id: str | None = None
    bet_terms_raw: str | None = None

    def is_expired(self, ttl_ms: int, now: int | None = None) -> bool:
        return (now if now is not None else now_ms()) - self.timestamp > ttl_ms
