from .machine import TRANSITIONS, Ticket, TicketEvent, TicketObserver, can_transition
from .models import (
    MONEY_IN_FLIGHT_STATES,
    PRE_PAYMENT_STATES,
    TERMINAL_STATES,
    HistoryEntry,
    PendingWager,
    TicketData,
    TicketState,
)
from .registry import TicketRegistry

__all__ = [
    "TRANSITIONS",
    "can_transition",
    "Ticket",
    "TicketEvent",
    "TicketObserver",
    "TicketRegistry",
    "TicketState",
    "TicketData",
    "HistoryEntry",
    "PendingWager",
    "TERMINAL_STATES",
    "MONEY_IN_FLIGHT_STATES",
    "PRE_PAYMENT_STATES",
]
