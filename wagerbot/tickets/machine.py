"""Ticket lifecycle state machine."""

import logging
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field, PrivateAttr

from .models import (
    MONEY_IN_FLIGHT_STATES,
    TERMINAL_STATES,
    CamelModel,
    HistoryEntry,
    TicketData,
    TicketState,
    now_ms,
)

logger = logging.getLogger(__name__)

S = TicketState

TRANSITIONS: dict[TicketState, frozenset[TicketState]] = {
    S.AWAITING_TICKET: frozenset({S.AWAITING_MIDDLEMAN, S.CANCELLED}),
    S.AWAITING_MIDDLEMAN: frozenset({S.AWAITING_PAYMENT_ADDRESS, S.CANCELLED}),
    S.AWAITING_PAYMENT_ADDRESS: frozenset({S.PAYMENT_SENT, S.CANCELLED}),
    S.PAYMENT_SENT: frozenset({S.AWAITING_GAME_START, S.CANCELLED}),
    S.AWAITING_GAME_START: frozenset({S.GAME_IN_PROGRESS, S.CANCELLED}),
    S.GAME_IN_PROGRESS: frozenset({S.GAME_COMPLETE, S.AWAITING_PAYOUT, S.CANCELLED}),
    S.AWAITING_PAYOUT: frozenset({S.GAME_COMPLETE, S.CANCELLED}),
    S.GAME_COMPLETE: frozenset(),
    S.CANCELLED: frozenset(),
}


def can_transition(from_state: TicketState, to_state: TicketState) -> bool:
    return to_state in TRANSITIONS.get(from_state, frozenset())


class TicketEvent(BaseModel):
    """Emitted to the ticket's observer after every mutation."""

    channel_id: str
    kind: Literal["transition", "update"]
    from_state: TicketState | None = None
    to_state: TicketState | None = None


TicketObserver = Callable[[TicketEvent], None]


class Ticket(CamelModel):
    """One ticket channel moving through the wager lifecycle."""

    channel_id: str
    state: TicketState = TicketState.AWAITING_TICKET
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
    history: list[HistoryEntry] = Field(default_factory=list)
    data: TicketData = Field(default_factory=TicketData)

    _observer: TicketObserver | None = PrivateAttr(default=None)
    _clock: Callable[[], int] = PrivateAttr(default=now_ms)

    def attach(
        self, observer: TicketObserver | None, clock: Callable[[], int] | None = None
    ) -> None:
        """Route events to ``observer``; timestamps come from ``clock`` when given."""
        self._observer = observer
        if clock is not None:
            self._clock = clock

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def money_in_flight(self) -> bool:
        return self.state in MONEY_IN_FLIGHT_STATES

    @property
    def payment_sent(self) -> bool:
        return self.data.payment_tx_id is not None

    def can_transition(self, to_state: TicketState) -> bool:
        return can_transition(self.state, to_state)

    def transition(self, to_state: TicketState, **updates: Any) -> bool:
        """Move to ``to_state`` and merge ``updates`` into data; refuse illegal moves."""
        if not self.can_transition(to_state):
            logger.warning(
                f"Invalid state transition refused for {self.channel_id}: "
                f"{self.state.value} -> {to_state.value}"
            )
            return False

        from_state = self.state
        self._apply(updates)
        self.state = to_state
        self.updated_at = self._clock()
        self.history.append(
            HistoryEntry(
                from_state=from_state,
                to=to_state,
                at=self.updated_at,
                data=self._dump_fields(updates),
            )
        )

        logger.info(f"Ticket {self.channel_id}: {from_state.value} -> {to_state.value}")
        self._emit(TicketEvent(
            channel_id=self.channel_id,
            kind="transition",
            from_state=from_state,
            to_state=to_state,
        ))
        return True

    def update_data(self, **updates: Any) -> None:
        """Merge ``updates`` into data without changing state."""
        self._apply(updates)
        self.updated_at = self._clock()
        self._emit(TicketEvent(channel_id=self.channel_id, kind="update"))

    def to_state(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def _apply(self, updates: dict[str, Any]) -> None:
        for name, value in updates.items():
            if name not in TicketData.model_fields:
                raise AttributeError(f"Unknown ticket data field: {name}")
            setattr(self.data, name, value)

    def _dump_fields(self, updates: dict[str, Any]) -> dict[str, Any]:
        if not updates:
            return {}
        return self.data.model_dump(mode="json", by_alias=True, include=set(updates))

    def _emit(self, event: TicketEvent) -> None:
        if self._observer is not None:
            self._observer(event)
