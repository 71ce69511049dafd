"""In-memory registry of tickets, pending wagers and sniping cooldowns."""

import logging
from collections import Counter
from decimal import Decimal
from typing import Any, Callable

from .machine import Ticket, TicketEvent
from .models import MONEY_IN_FLIGHT_STATES, PendingWager, TicketData, TicketState, now_ms

logger = logging.getLogger(__name__)

TERMINAL_RETENTION_MS = 24 * 60 * 60 * 1000
IDLE_TIMEOUT_MS = 12 * 60 * 60 * 1000
CHANNEL_NAME_PREFIXES = ("ticket-", "order-")


class TicketRegistry:
    """Owns every ticket and pending wager; all mutations request a save."""

    def __init__(
        self,
        pending_wager_ttl_ms: int = 300_000,
        cooldown_ms: int = 60_000,
        on_change: Callable[[], None] | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.pending_wager_ttl_ms = pending_wager_ttl_ms
        self.cooldown_ms = cooldown_ms
        self._on_change = on_change
        self._clock = clock

        self._tickets: dict[str, Ticket] = {}
        self._user_tickets: dict[str, Ticket] = {}
        self._cooldowns: dict[str, int] = {}
        self._pending: dict[str, PendingWager] = {}

    def set_change_listener(self, on_change: Callable[[], None] | None) -> None:
        self._on_change = on_change

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    def create_ticket(self, channel_id: str, **data: Any) -> Ticket:
        existing = self._tickets.get(channel_id)
        if existing is not None:
            logger.info(f"Ticket already exists for channel {channel_id} ({existing.state.value})")
            return existing

        now = self._clock()
        ticket = Ticket(
            channel_id=channel_id,
            created_at=now,
            updated_at=now,
            data=TicketData(**data),
        )
        ticket.attach(self._handle_ticket_event, self._clock)
        self._tickets[channel_id] = ticket

        opponent_id = ticket.data.opponent_id
        if opponent_id:
            self._user_tickets[opponent_id] = ticket
            self.set_cooldown(opponent_id, notify=False)

        logger.info(
            f"Created ticket {channel_id} (opponent={opponent_id}, "
            f"bet=${ticket.data.opponent_bet}, ours=${ticket.data.our_bet})"
        )
        self._notify()
        return ticket

    def get_ticket(self, channel_id: str) -> Ticket | None:
        return self._tickets.get(channel_id)

    def get_ticket_for_user(self, user_id: str) -> Ticket | None:
        ticket = self._user_tickets.get(user_id)
        if ticket is None or ticket.is_terminal:
            return None
        return ticket

    def is_user_in_active_ticket(self, user_id: str) -> bool:
        return self.get_ticket_for_user(user_id) is not None

    def remove_ticket(self, channel_id: str) -> Ticket | None:
        ticket = self._tickets.pop(channel_id, None)
        if ticket is None:
            return None
        ticket.attach(None)
        opponent_id = ticket.data.opponent_id
        if opponent_id and self._user_tickets.get(opponent_id) is ticket:
            del self._user_tickets[opponent_id]
        logger.info(f"Removed ticket {channel_id} ({ticket.state.value})")
        self._notify()
        return ticket

    def tickets(self) -> list[Ticket]:
        return list(self._tickets.values())

    def active_tickets(self) -> list[Ticket]:
        return [t for t in self._tickets.values() if not t.is_terminal]

    def tickets_in_state(self, state: TicketState) -> list[Ticket]:
        return [t for t in self._tickets.values() if t.state == state]

    def _handle_ticket_event(self, event: TicketEvent) -> None:
        ticket = self._tickets.get(event.channel_id)
        if ticket is not None:
            opponent_id = ticket.data.opponent_id
            if ticket.is_terminal:
                if opponent_id and self._user_tickets.get(opponent_id) is ticket:
                    del self._user_tickets[opponent_id]
            elif opponent_id and self._user_tickets.get(opponent_id) is not ticket:
                self._user_tickets[opponent_id] = ticket
        self._notify()

    # ------------------------------------------------------------------
    # Cooldowns
    # ------------------------------------------------------------------

    def set_cooldown(self, user_id: str, notify: bool = True) -> None:
        self._cooldowns[user_id] = self._clock()
        if notify:
            self._notify()

    def is_on_cooldown(self, user_id: str) -> bool:
        started = self._cooldowns.get(user_id)
        if started is None:
            return False
        if self._clock() - started >= self.cooldown_ms:
            del self._cooldowns[user_id]
            return False
        return True

    # ------------------------------------------------------------------
    # Pending wagers
    # ------------------------------------------------------------------

    def store_pending_wager(
        self,
        user_id: str,
        opponent_bet: Decimal,
        our_bet: Decimal,
        source_channel_id: str,
        username: str = "",
        message_id: str | None = None,
        bet_terms_raw: str | None = None,
    ) -> PendingWager:
        wager = PendingWager(
            user_id=user_id,
            username=username,
            opponent_bet=opponent_bet,
            our_bet=our_bet,
            source_channel_id=source_channel_id,
            timestamp=self._clock(),
            message_id=message_id,
            bet_terms_raw=bet_terms_raw,
        )
        # Re-insert so dict order tracks recency
        self._pending.pop(user_id, None)
        self._pending[user_id] = wager
        logger.info(f"Stored pending wager for {username or user_id}: ${opponent_bet} vs ${our_bet}")
        self._notify()
        return wager

    def get_pending_wager(self, user_id: str) -> PendingWager | None:
        wager = self._pending.get(user_id)
        if wager is None:
            return None
        if wager.is_expired(self.pending_wager_ttl_ms, self._clock()):
            del self._pending[user_id]
            logger.debug(f"Pending wager for {user_id} expired")
            self._notify()
            return None
        return wager

    def pending_wagers(self) -> list[PendingWager]:
        return list(self._pending.values())

    def take_pending_wager_for_channel(self, channel_name: str) -> PendingWager | None:
        """Pick and consume the pending wager that best matches a new ticket channel."""
        self.sweep_pending_wagers()
        if not self._pending:
            return None

        name = (channel_name or "").lower()
        stripped = name
        for prefix in CHANNEL_NAME_PREFIXES:
            if stripped.startswith(prefix):
                stripped = stripped[len(prefix):]
                break

        match: PendingWager | None = None
        reason = ""
        for wager in self._pending.values():
            if wager.user_id and wager.user_id in name:
                match, reason = wager, "user id"
                break
        if match is None:
            for wager in self._pending.values():
                username = wager.username.lower()
                if username and (username in stripped or username in name):
                    match, reason = wager, "username"
                    break
        if match is None and len(self._pending) == 1:
            match, reason = next(iter(self._pending.values())), "single pending"
        if match is None:
            match = max(self._pending.values(), key=lambda w: w.timestamp)
            reason = "most recent"

        del self._pending[match.user_id]
        logger.info(f"Correlated channel '{channel_name}' with wager of {match.user_id} ({reason})")
        self._notify()
        return match

    def sweep_pending_wagers(self) -> int:
        now = self._clock()
        expired = [
            user_id
            for user_id, wager in self._pending.items()
            if wager.is_expired(self.pending_wager_ttl_ms, now)
        ]
        for user_id in expired:
            del self._pending[user_id]
        if expired:
            logger.info(f"Expired {len(expired)} pending wagers")
            self._notify()
        return len(expired)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup(self) -> list[str]:
        """Drop old terminal tickets and idle safe-state tickets."""
        now = self._clock()
        removed: list[str] = []

        for ticket in list(self._tickets.values()):
            age = now - ticket.updated_at
            if ticket.state in MONEY_IN_FLIGHT_STATES:
                if age > IDLE_TIMEOUT_MS:
                    logger.warning(
                        f"Ticket {ticket.channel_id} idle in {ticket.state.value} "
                        "with money in flight; manual review required"
                    )
                continue
            if ticket.is_terminal:
                if age > TERMINAL_RETENTION_MS:
                    removed.append(ticket.channel_id)
            elif age > IDLE_TIMEOUT_MS:
                ticket.transition(TicketState.CANCELLED, cancellation_reason="stale")
                removed.append(ticket.channel_id)

        for channel_id in removed:
            self.remove_ticket(channel_id)

        for user_id, started in list(self._cooldowns.items()):
            if now - started >= self.cooldown_ms:
                del self._cooldowns[user_id]

        if removed:
            logger.info(f"Cleaned up {len(removed)} tickets")
        return removed

    def stats(self) -> dict[str, Any]:
        by_state = Counter(t.state.value for t in self._tickets.values())
        return {
            "tickets": len(self._tickets),
            "by_state": dict(by_state),
            "pending_wagers": len(self._pending),
            "cooldowns": len(self._cooldowns),
        }

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return {
            "tickets": [t.to_state() for t in self._tickets.values()],
            "pendingWagers": [
                [user_id, wager.model_dump(mode="json", by_alias=True)]
                for user_id, wager in self._pending.items()
            ],
            "cooldowns": [[user_id, ts] for user_id, ts in self._cooldowns.items()],
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        """Rebuild all maps from a snapshot, clearing every payment lock."""
        self._tickets.clear()
        self._user_tickets.clear()
        self._pending.clear()
        self._cooldowns.clear()

        for raw in snapshot.get("tickets", []):
            ticket = Ticket.model_validate(raw)
            ticket.data.payment_locked = False
            ticket.attach(self._handle_ticket_event, self._clock)
            self._tickets[ticket.channel_id] = ticket
            opponent_id = ticket.data.opponent_id
            if opponent_id and not ticket.is_terminal:
                self._user_tickets[opponent_id] = ticket

        for user_id, raw in snapshot.get("pendingWagers", []):
            self._pending[str(user_id)] = PendingWager.model_validate(raw)

        for user_id, ts in snapshot.get("cooldowns", []):
            self._cooldowns[str(user_id)] = int(ts)

        logger.info(
            f"Restored {len(self._tickets)} tickets, {len(self._pending)} pending wagers, "
            f"{len(self._cooldowns)} cooldowns"
        )

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
