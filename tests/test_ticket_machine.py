"""Tests for the ticket lifecycle state machine."""

import logging
from decimal import Decimal

import pytest

from wagerbot.tickets import (
    MONEY_IN_FLIGHT_STATES,
    TERMINAL_STATES,
    TRANSITIONS,
    Ticket,
    TicketEvent,
    TicketState,
    can_transition,
)

S = TicketState

HAPPY_PATH = [
    S.AWAITING_MIDDLEMAN,
    S.AWAITING_PAYMENT_ADDRESS,
    S.PAYMENT_SENT,
    S.AWAITING_GAME_START,
    S.GAME_IN_PROGRESS,
    S.AWAITING_PAYOUT,
    S.GAME_COMPLETE,
]


def test_every_state_has_an_entry() -> None:
    assert set(TRANSITIONS) == set(TicketState)
    for state in TERMINAL_STATES:
        assert TRANSITIONS[state] == frozenset()
    for state in set(TicketState) - TERMINAL_STATES:
        assert can_transition(state, S.CANCELLED)


def test_happy_path_records_history() -> None:
    ticket = Ticket(channel_id="t1")
    for state in HAPPY_PATH:
        assert ticket.transition(state)

    assert ticket.state == S.GAME_COMPLETE
    assert ticket.is_terminal
    assert [entry.to for entry in ticket.history] == HAPPY_PATH
    assert ticket.history[0].from_state == S.AWAITING_TICKET


def test_invalid_transition_is_refused(caplog: pytest.LogCaptureFixture) -> None:
    ticket = Ticket(channel_id="t1")
    ticket.transition(S.AWAITING_MIDDLEMAN)
    before = ticket.updated_at

    with caplog.at_level(logging.WARNING):
        assert not ticket.transition(S.GAME_IN_PROGRESS)

    assert ticket.state == S.AWAITING_MIDDLEMAN
    assert len(ticket.history) == 1
    assert ticket.updated_at == before
    assert "AWAITING_MIDDLEMAN -> GAME_IN_PROGRESS" in caplog.text


def test_terminal_states_have_no_exits() -> None:
    ticket = Ticket(channel_id="t1")
    assert ticket.transition(S.CANCELLED)
    for state in TicketState:
        assert not ticket.transition(state)


def test_transition_merges_data_and_notifies() -> None:
    events: list[TicketEvent] = []
    ticket = Ticket(channel_id="t1")
    ticket.attach(events.append)

    ticket.transition(S.AWAITING_MIDDLEMAN, opponent_id="222", opponent_bet=Decimal("15"))
    ticket.update_data(our_bet=Decimal("17.25"))

    assert ticket.data.opponent_id == "222"
    assert ticket.data.has_bet
    assert ticket.history[0].data == {"opponentId": "222", "opponentBet": "15"}
    assert [event.kind for event in events] == ["transition", "update"]
    assert events[0].to_state == S.AWAITING_MIDDLEMAN


def test_unknown_data_field_raises() -> None:
    ticket = Ticket(channel_id="t1")
    with pytest.raises(AttributeError):
        ticket.update_data(favourite_colour="blue")


def test_money_in_flight_states() -> None:
    ticket = Ticket(channel_id="t1")
    for state in HAPPY_PATH:
        ticket.transition(state)
        assert ticket.money_in_flight == (state in MONEY_IN_FLIGHT_STATES)
    assert S.PAYMENT_SENT in MONEY_IN_FLIGHT_STATES
    assert S.AWAITING_GAME_START not in MONEY_IN_FLIGHT_STATES


def test_serialized_form_is_camel_case() -> None:
    ticket = Ticket(channel_id="t1")
    ticket.transition(S.AWAITING_MIDDLEMAN, opponent_id="222")

    state = ticket.to_state()
    assert state["channelId"] == "t1"
    assert state["data"]["opponentId"] == "222"
    assert state["history"][0]["from"] == "AWAITING_TICKET"

    restored = Ticket.model_validate(state)
    assert restored.state == S.AWAITING_MIDDLEMAN
    assert restored.data.opponent_id == "222"
