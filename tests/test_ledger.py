"""Tests for the payment idempotency ledger and atomic file writes."""

import json
from decimal import Decimal
from pathlib import Path

import pytest

from wagerbot.exceptions import PersistenceFailureError
from wagerbot.storage import (
    IdempotencyLedger,
    PaymentState,
    atomic_write_json,
    make_payment_id,
    read_json,
)

ADDRESS = "LY7VX5yZgVbEsL3kS9F2a8B4c5D6e7F8g9"


def test_payment_id_is_deterministic() -> None:
    first = make_payment_id("t1", ADDRESS, Decimal("17.25"))
    assert first == make_payment_id("t1", ADDRESS, Decimal("17.250"))
    assert len(first) == 16
    assert first != make_payment_id("t2", ADDRESS, Decimal("17.25"))
    assert first != make_payment_id("t1", ADDRESS, Decimal("17.26"))


def test_lifecycle_is_persisted(tmp_path: Path) -> None:
    path = tmp_path / "idempotency.json"
    ledger = IdempotencyLedger(path)
    payment_id = make_payment_id("t1", ADDRESS, Decimal("17.25"))

    assert ledger.can_send(payment_id).allowed
    assert ledger.record_intent(payment_id, ADDRESS, Decimal("17.25"), "t1")
    assert not ledger.record_intent(payment_id, ADDRESS, Decimal("17.25"), "t1")
    assert ledger.record_broadcast(payment_id, "abc123")
    assert ledger.record_confirmed(payment_id)

    check = ledger.can_send(payment_id)
    assert not check.allowed
    assert check.existing_tx_id == "abc123"

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk[payment_id]["state"] == "CONFIRMED"
    assert on_disk[payment_id]["txId"] == "abc123"

    reloaded = IdempotencyLedger(path)
    reloaded.load()
    assert reloaded.get(payment_id).state == PaymentState.CONFIRMED
    assert reloaded.daily_spend() == Decimal("17.25")


def test_invalid_transitions_are_refused(tmp_path: Path) -> None:
    ledger = IdempotencyLedger(tmp_path / "idempotency.json")
    ledger.record_intent("p1", ADDRESS, Decimal("5"), "t1")

    assert not ledger.record_confirmed("p1")
    assert not ledger.record_broadcast("missing", "tx")
    assert ledger.get("p1").state == PaymentState.PENDING


def test_failed_payment_can_be_reopened(tmp_path: Path) -> None:
    ledger = IdempotencyLedger(tmp_path / "idempotency.json")
    ledger.record_intent("p1", ADDRESS, Decimal("5"), "t1")
    ledger.record_failed("p1", "node down")

    check = ledger.can_send("p1")
    assert check.allowed
    assert "FAILED" in check.reason
    assert ledger.reopen("p1")
    assert ledger.get("p1").state == PaymentState.PENDING
    assert ledger.get("p1").error is None


def test_broadcast_then_failed_cannot_be_reopened(tmp_path: Path) -> None:
    ledger = IdempotencyLedger(tmp_path / "idempotency.json")
    ledger.record_intent("p1", ADDRESS, Decimal("5"), "t1")
    ledger.record_broadcast("p1", "tx1")
    ledger.record_failed("p1", "dropped from mempool")

    assert not ledger.reopen("p1")
    assert ledger.get("p1").state == PaymentState.FAILED


def test_daily_spend_counts_only_spent_records(tmp_path: Path) -> None:
    ledger = IdempotencyLedger(tmp_path / "idempotency.json")
    ledger.record_intent("p1", ADDRESS, Decimal("10"), "t1")
    ledger.record_broadcast("p1", "tx1")
    ledger.record_intent("p2", ADDRESS, Decimal("20"), "t2")
    ledger.record_intent("p3", ADDRESS, Decimal("30"), "t3")
    ledger.record_failed("p3", "boom")

    assert ledger.daily_spend() == Decimal("10")


def test_reconcile_reports_in_flight_records(tmp_path: Path) -> None:
    ledger = IdempotencyLedger(tmp_path / "idempotency.json")
    ledger.record_intent("p1", ADDRESS, Decimal("10"), "t1")
    ledger.record_intent("p2", ADDRESS, Decimal("10"), "t2")
    ledger.record_broadcast("p2", "tx2")

    assert ledger.reconcile() == {"pending": 1, "broadcast": 1}


def test_intent_is_rolled_back_when_flush_fails(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    ledger = IdempotencyLedger(blocker / "idempotency.json")

    with pytest.raises(PersistenceFailureError):
        ledger.record_intent("p1", ADDRESS, Decimal("5"), "t1")
    assert ledger.get("p1") is None


def test_atomic_write_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "doc.json"
    atomic_write_json(path, {"a": 1, "emoji": "🎲"})

    assert read_json(path) == {"a": 1, "emoji": "🎲"}
    assert not (tmp_path / "nested" / "doc.json.tmp").exists()
    assert read_json(tmp_path / "missing.json") is None


def test_atomic_write_keeps_previous_document_on_failure(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    atomic_write_json(path, {"version": 1})

    with pytest.raises(PersistenceFailureError):
        atomic_write_json(path, {"bad": object()})

    assert read_json(path) == {"version": 1}
    assert not (tmp_path / "doc.json.tmp").exists()


def test_atomic_write_under_a_file_raises_persistence_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(PersistenceFailureError):
        atomic_write_json(blocker / "state.json", {"version": 1})
    assert blocker.read_text(encoding="utf-8") == "x"


def test_corrupt_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(PersistenceFailureError):
        read_json(path)
