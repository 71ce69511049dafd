"""Per-ticket conversation flow, dispatched on the ticket's current state."""

import asyncio
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Awaitable, Callable

from wagerbot.betting import calculate_our_bet, format_usd, pot_of, validate_bet_amount
from wagerbot.config import Settings
from wagerbot.extractors import (
    ROLL_PREFIX,
    extract_address,
    extract_bet,
    extract_dice_result,
    extract_game_start,
    is_cancellation,
    is_own_roll,
    is_payment_confirmation,
    is_reset_command,
    is_roll_command,
)
from wagerbot.game import ScoreTracker, format_roll, roll_die
from wagerbot.payments import PaymentGate
from wagerbot.services.prices import PriceOracle
from wagerbot.services.wallets import Receipt
from wagerbot.tickets import PRE_PAYMENT_STATES, Ticket, TicketRegistry, TicketState

from .models import ChannelInfo, ChatEvent, ChatTransport
from .outbox import ChannelOutbox

logger = logging.getLogger(__name__)

S = TicketState

MONEY_IN_FLIGHT_ADVISORY = (
    "⚠️ Funds are already committed on this ticket. "
    "Cancellation needs an operator to review it manually."
)
ADDRESS_EDIT_WARNING = "⚠️ CRITICAL: Crypto address modification detected. Flow halted for safety."
DICE_EDIT_WARNING = "⚠️ CRITICAL: Dice roll modification detected."

Handler = Callable[[Ticket, ChatEvent], Awaitable[bool]]


class TicketHandler:
    """Drives one ticket channel from detection to payout.

    Every entry point takes the channel's lock, so messages for one ticket
    are processed strictly in arrival order while other channels proceed
    independently. Handlers return True when they changed state or replied.
    """

    def __init__(
        self,
        settings: Settings,
        registry: TicketRegistry,
        gate: PaymentGate,
        oracle: PriceOracle,
        outbox: ChannelOutbox,
        transport: ChatTransport,
        roll: Callable[[], int] = roll_die,
    ):
        self.settings = settings
        self.registry = registry
        self.gate = gate
        self.oracle = oracle
        self.outbox = outbox
        self.transport = transport
        self._roll = roll
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._background: set[asyncio.Task] = set()

        self._handlers: dict[TicketState, Handler] = {
            S.AWAITING_TICKET: self._on_awaiting_ticket,
            S.AWAITING_MIDDLEMAN: self._on_awaiting_middleman,
            S.AWAITING_PAYMENT_ADDRESS: self._on_awaiting_payment_address,
            S.PAYMENT_SENT: self._on_payment_sent,
            S.AWAITING_GAME_START: self._on_awaiting_game_start,
            S.GAME_IN_PROGRESS: self._on_game_in_progress,
        }

    @property
    def bot_id(self) -> str:
        return self.transport.bot_user_id

    @property
    def network(self) -> str:
        return self.settings.crypto_network

    def is_middleman(self, user_id: str) -> bool:
        return user_id in self.settings.middleman_ids

    def is_ticket_channel(self, channel: ChannelInfo) -> bool:
        """Ticket channels are named after a keyword and are never public betting channels."""
        if channel.type == "dm" or channel.id in self.settings.monitored_channels:
            return False
        name = channel.name.lower()
        return any(keyword in name for keyword in self.settings.ticket_channel_keywords)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle(self, event: ChatEvent) -> bool:
        async with self._locks[event.channel.id]:
            return await self._handle(event)

    async def handle_channel_created(self, channel: ChannelInfo) -> Ticket | None:
        if not self.is_ticket_channel(channel):
            return None
        async with self._locks[channel.id]:
            existing = self.registry.get_ticket(channel.id)
            if existing is not None:
                return existing
            logger.info(f"Ticket channel created: #{channel.name} ({channel.id})")
            return self._open_ticket(channel)

    async def handle_channel_deleted(self, channel_id: str) -> bool:
        async with self._locks[channel_id]:
            ticket = self.registry.remove_ticket(channel_id)
        self._locks.pop(channel_id, None)
        if ticket is None:
            return False
        if ticket.money_in_flight:
            logger.error(
                f"Ticket channel {channel_id} deleted in {ticket.state.value} with money "
                f"in flight (payment tx {ticket.data.payment_tx_id})"
            )
        else:
            logger.info(f"Ticket channel {channel_id} deleted in {ticket.state.value}")
        return True

    async def handle_message_edit(self, before: ChatEvent | None, after: ChatEvent) -> bool:
        """Warn when an edit rewrites an address or a dice value; state is left alone."""
        ticket = self.registry.get_ticket(after.channel.id)
        if ticket is None or ticket.is_terminal or before is None:
            return False

        old_address = extract_address(before.content, self.network)
        new_address = extract_address(after.content, self.network)
        if old_address and old_address != new_address:
            logger.error(
                f"Address edited in ticket {ticket.channel_id} by {after.author.id}: "
                f"{old_address} -> {new_address}"
            )
            await self.outbox.send(ticket.channel_id, ADDRESS_EDIT_WARNING)
            return True

        old_dice = extract_dice_result(before.content, before.mentions)
        new_dice = extract_dice_result(after.content, after.mentions)
        if old_dice and (new_dice is None or new_dice.value != old_dice.value):
            logger.error(
                f"Dice roll edited in ticket {ticket.channel_id} by {after.author.id}: "
                f"{old_dice.value} -> {new_dice.value if new_dice else None}"
            )
            await self.outbox.send(ticket.channel_id, DICE_EDIT_WARNING)
            return True
        return False

    async def complete_payout(self, channel_id: str, receipt: Receipt) -> bool:
        """Close a won ticket once the payout sweep has matched its receipt."""
        async with self._locks[channel_id]:
            ticket = self.registry.get_ticket(channel_id)
            if ticket is None or ticket.state != S.AWAITING_PAYOUT:
                return False
            if not ticket.transition(
                S.GAME_COMPLETE,
                payout_tx_id=receipt.tx_id,
                payout_amount=receipt.amount,
            ):
                return False
            logger.info(
                f"Payout received for ticket {channel_id}: {receipt.amount} {self.network} "
                f"(tx {receipt.tx_id})"
            )
            await self._on_complete(ticket)
            return True

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _handle(self, event: ChatEvent) -> bool:
        ticket = self.registry.get_ticket(event.channel.id)
        detected = False
        if ticket is None:
            if not self.is_ticket_channel(event.channel):
                return False
            ticket = self._open_ticket(event.channel)
            detected = True
        elif ticket.is_terminal:
            return False

        author = event.author
        if (
            ticket.data.opponent_id is None
            and not author.bot
            and author.id != self.bot_id
            and not self.is_middleman(author.id)
        ):
            ticket.update_data(opponent_id=author.id)
            logger.info(f"Latched {author.id} as opponent in ticket {ticket.channel_id}")

        if await self._handle_cancellation(ticket, event):
            return True

        handler = self._handlers.get(ticket.state)
        handled = await handler(ticket, event) if handler else False
        return handled or detected

    def _open_ticket(self, channel: ChannelInfo) -> Ticket:
        wager = self.registry.take_pending_wager_for_channel(channel.name)
        if wager is None:
            logger.info(f"No pending wager matches #{channel.name}; waiting for opponent")
            return self.registry.create_ticket(channel.id, auto_detected=True)

        ticket = self.registry.create_ticket(
            channel.id,
            opponent_id=wager.user_id,
            opponent_bet=wager.opponent_bet,
            our_bet=calculate_our_bet(wager.opponent_bet, self.settings.tax_percentage),
            auto_detected=True,
            source_channel_id=wager.source_channel_id,
        )
        if ticket.state == S.AWAITING_TICKET:
            ticket.transition(S.AWAITING_MIDDLEMAN)
        return ticket

    async def _handle_cancellation(self, ticket: Ticket, event: ChatEvent) -> bool:
        author_id = event.author.id
        if author_id != ticket.data.opponent_id and not self.is_middleman(author_id):
            return False

        if is_cancellation(event.content, self.settings.cancellation_keywords):
            if ticket.money_in_flight or ticket.data.payment_locked:
                logger.warning(
                    f"Cancellation requested by {author_id} in ticket {ticket.channel_id} "
                    f"while {ticket.state.value}; operator intervention required"
                )
                await self.outbox.send(ticket.channel_id, MONEY_IN_FLIGHT_ADVISORY)
                return True
            if ticket.transition(S.CANCELLED, cancellation_reason=f"cancelled by {author_id}"):
                await self.outbox.send(ticket.channel_id, "Received. Ticket cancelled.")
                return True
            return False

        if (
            is_reset_command(event.content)
            and self.is_middleman(author_id)
            and ticket.state in PRE_PAYMENT_STATES
            and not ticket.data.payment_locked
        ):
            data = ticket.data
            ticket.transition(S.CANCELLED, cancellation_reason="reset")
            self.registry.remove_ticket(ticket.channel_id)
            fresh = self.registry.create_ticket(
                ticket.channel_id,
                opponent_id=data.opponent_id,
                opponent_bet=data.opponent_bet,
                our_bet=data.our_bet,
                auto_detected=data.auto_detected,
                source_channel_id=data.source_channel_id,
            )
            fresh.transition(S.AWAITING_MIDDLEMAN)
            await self.outbox.send(
                ticket.channel_id, "Received. Ticket state reset to AWAITING_MIDDLEMAN."
            )
            return True
        return False

    def _fill_bet(self, ticket: Ticket, event: ChatEvent) -> bool:
        """Take the bet from a message while the ticket has none."""
        if ticket.data.has_bet:
            return False
        bet = extract_bet(event.content)
        if bet is None:
            return False
        validation = validate_bet_amount(bet.opponent, self.settings.betting_limits)
        if not validation.valid:
            logger.warning(f"Ignoring bet in ticket {ticket.channel_id}: {validation.reason}")
            return False
        ticket.update_data(
            opponent_bet=bet.opponent,
            our_bet=calculate_our_bet(bet.opponent, self.settings.tax_percentage),
        )
        logger.info(f"Bet for ticket {ticket.channel_id} set to {format_usd(bet.opponent)}")
        return True

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _on_awaiting_ticket(self, ticket: Ticket, event: ChatEvent) -> bool:
        author_id = event.author.id
        if author_id != ticket.data.opponent_id and not self.is_middleman(author_id):
            return False

        self._fill_bet(ticket, event)
        if ticket.data.opponent_id is None or not ticket.data.has_bet:
            return False

        ticket.transition(S.AWAITING_MIDDLEMAN)
        if self.is_middleman(author_id):
            return await self._on_awaiting_middleman(ticket, event)
        await self.outbox.send(
            ticket.channel_id,
            f"Ready: {format_usd(ticket.data.opponent_bet)} vs my "
            f"{format_usd(ticket.data.our_bet)}. Waiting for a middleman.",
        )
        return True

    async def _on_awaiting_middleman(self, ticket: Ticket, event: ChatEvent) -> bool:
        author_id = event.author.id
        if not self.is_middleman(author_id):
            return False

        self._fill_bet(ticket, event)
        ticket.transition(S.AWAITING_PAYMENT_ADDRESS, middleman_id=author_id)
        logger.info(f"Middleman {author_id} joined ticket {ticket.channel_id}")
        self._spawn(self.oracle.prefetch(self.network))

        if extract_address(event.content, self.network):
            await self._on_awaiting_payment_address(ticket, event)
        return True

    async def _on_awaiting_payment_address(self, ticket: Ticket, event: ChatEvent) -> bool:
        if event.author.id != ticket.data.middleman_id:
            return False
        self._fill_bet(ticket, event)

        content = event.content
        address = extract_address(content, self.network)
        if address is None:
            if len(content) > 20 or "address" in content.lower():
                await self.outbox.send(
                    ticket.channel_id,
                    f"⚠️ I couldn't find a valid {self.network} address. "
                    "Please paste ONLY the address or check format.",
                )
                return True
            return False

        own_address = self.settings.payout_address(self.network)
        if own_address and address == own_address:
            logger.warning(f"Refusing self-send to own payout address in ticket {ticket.channel_id}")
            await self.outbox.send(
                ticket.channel_id,
                "⚠️ That is my own payout address. Please send the middleman address.",
            )
            return True

        if ticket.data.payment_locked:
            logger.info(f"Payment already in progress for ticket {ticket.channel_id}")
            return False

        if not ticket.data.has_bet:
            await self.outbox.send(
                ticket.channel_id,
                "⚠️ Bet amount unknown. Please confirm the bet first (e.g. 15v15).",
            )
            return True

        return await self._send_payment(ticket, address)

    async def _send_payment(self, ticket: Ticket, address: str) -> bool:
        our_bet = ticket.data.our_bet
        ticket.update_data(payment_locked=True)
        try:
            result = await self.gate.send_payment(address, our_bet, self.network, ticket.channel_id)
        except Exception:
            ticket.update_data(payment_locked=False)
            raise

        if not result.success:
            ticket.update_data(payment_locked=False)
            logger.error(f"Payment for ticket {ticket.channel_id} failed: {result}")
            await self.outbox.send(ticket.channel_id, f"Payment failed: {result.error}")
            return True

        ticket.transition(
            S.PAYMENT_SENT,
            payment_address=address,
            payment_tx_id=result.tx_id,
            payment_locked=False,
        )
        message = (
            self.settings.response_templates.payment_sent
            .replace("{amount}", f"{our_bet:.2f}")
            .replace("{txid}", result.tx_id or "")
        )
        await self.outbox.send(ticket.channel_id, message)
        return True

    async def _on_payment_sent(self, ticket: Ticket, event: ChatEvent) -> bool:
        if event.author.id != ticket.data.middleman_id:
            return False
        if not is_payment_confirmation(event.content):
            return False

        ticket.transition(S.AWAITING_GAME_START)
        await self.outbox.send(ticket.channel_id, "Confirm")
        return True

    async def _on_awaiting_game_start(self, ticket: Ticket, event: ChatEvent) -> bool:
        if event.author.id != ticket.data.middleman_id:
            return False
        start = extract_game_start(event.content, self.bot_id)
        if start is None:
            return False

        game = self.settings.game_settings
        tracker = ScoreTracker(
            ticket_id=ticket.channel_id,
            wins_needed=game.wins_to_complete,
            bot_wins_ties=game.bot_wins_ties,
            bot_goes_first=start.bot_first,
        )
        ticket.transition(
            S.GAME_IN_PROGRESS,
            bot_goes_first=start.bot_first,
            tracker_state=tracker.to_state(),
            game_scores=tracker.scores.model_copy(),
        )
        logger.info(
            f"Game started in ticket {ticket.channel_id} "
            f"({'bot' if start.bot_first else 'opponent'} first, to {game.wins_to_complete})"
        )
        await self.outbox.send(ticket.channel_id, "Confirm")

        if start.bot_first:
            await self._roll_pending(ticket, tracker)
        return True

    async def _on_game_in_progress(self, ticket: Ticket, event: ChatEvent) -> bool:
        if is_own_roll(event.content):
            return False
        author_id = event.author.id
        tracker = self._tracker(ticket)
        dice = extract_dice_result(event.content, event.mentions)

        if dice is None:
            if (
                author_id == ticket.data.middleman_id
                and is_roll_command(event.content)
                and tracker.pending_bot_roll is None
            ):
                await self._roll_pending(ticket, tracker)
                return True
            return False

        from_opponent = author_id == ticket.data.opponent_id
        from_dice_bot = author_id in self.settings.dice_bot_ids
        if not (from_opponent or from_dice_bot):
            return False
        if from_dice_bot and dice.target_id == self.bot_id:
            return False

        bot_roll = tracker.take_pending_bot_roll()
        if bot_roll is None:
            bot_roll = self._roll()

        outcome = tracker.record_round(bot_roll, dice.value)
        ticket.update_data(tracker_state=tracker.to_state(), game_scores=outcome.scores)

        verdict = {"bot": "I win!", "opponent": "You win!"}.get(outcome.round_winner, "Tie!")
        await self.outbox.send(
            ticket.channel_id,
            f"{format_roll(bot_roll)} vs {format_roll(dice.value)} - "
            f"{verdict} ({tracker.formatted_score})",
        )

        if outcome.game_over:
            await self._finish_game(ticket, tracker)
        elif tracker.bot_goes_first:
            await self._roll_pending(ticket, tracker)
        return True

    # ------------------------------------------------------------------
    # Game helpers
    # ------------------------------------------------------------------

    def _tracker(self, ticket: Ticket) -> ScoreTracker:
        if ticket.data.tracker_state:
            return ScoreTracker.from_state(ticket.data.tracker_state)
        game = self.settings.game_settings
        logger.warning(f"Ticket {ticket.channel_id} has no tracker state; starting a new game")
        return ScoreTracker(
            ticket_id=ticket.channel_id,
            wins_needed=game.wins_to_complete,
            bot_wins_ties=game.bot_wins_ties,
            bot_goes_first=ticket.data.bot_goes_first,
        )

    async def _roll_pending(self, ticket: Ticket, tracker: ScoreTracker) -> None:
        value = self._roll()
        tracker.set_pending_bot_roll(value)
        ticket.update_data(tracker_state=tracker.to_state())
        await self.outbox.send(ticket.channel_id, f"{ROLL_PREFIX} {format_roll(value)}")

    async def _finish_game(self, ticket: Ticket, tracker: ScoreTracker) -> None:
        logger.info(
            f"Game over in ticket {ticket.channel_id}: {tracker.winner} wins "
            f"{tracker.formatted_score}"
        )
        if not tracker.did_bot_win:
            await self.outbox.send(ticket.channel_id, "GG, well played!")
            ticket.transition(S.GAME_COMPLETE, winner=tracker.winner)
            await self._on_complete(ticket)
            return

        pot = pot_of(ticket.data.opponent_bet, ticket.data.our_bet)
        await self.outbox.send(
            ticket.channel_id, f"GG! 🎉 Send {format_usd(pot)} ({self.network}) to:"
        )
        await self.outbox.send(ticket.channel_id, f"`{self.settings.payout_address(self.network)}`")

        if self.settings.game_settings.require_payout_confirmation:
            ticket.transition(S.AWAITING_PAYOUT, winner=tracker.winner)
            return
        ticket.transition(S.GAME_COMPLETE, winner=tracker.winner)
        await self._on_complete(ticket)

    async def _on_complete(self, ticket: Ticket) -> None:
        if ticket.data.winner == "bot":
            await self._post_vouch(ticket)
        logger.info(f"Ticket {ticket.channel_id} complete: {self.registry.stats()}")

    async def _post_vouch(self, ticket: Ticket) -> None:
        vouch_channel = self.settings.channels.vouch_channel_id
        opponent_id = ticket.data.opponent_id
        if not opponent_id or not vouch_channel:
            logger.warning(
                f"Skipping vouch for ticket {ticket.channel_id}: "
                f"opponent={opponent_id}, vouch channel={vouch_channel or None}"
            )
            return

        middleman = f"<@{ticket.data.middleman_id}>" if ticket.data.middleman_id else "MM"
        message = (
            self.settings.response_templates.vouch_win
            .replace("{amount}", f"{Decimal(ticket.data.opponent_bet):.2f}")
            .replace("{opponent}", f"<@{opponent_id}>")
            .replace("{middleman}", middleman)
        )
        await self.outbox.send(vouch_channel, message)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
