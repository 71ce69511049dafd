"""Counter-offers to public ``XvX`` bets."""

import logging

from wagerbot.betting import calculate_our_bet, format_usd, validate_bet_amount
from wagerbot.config import Settings
from wagerbot.extractors import extract_bet
from wagerbot.tickets import TicketRegistry

from .models import ChatEvent
from .outbox import ChannelOutbox

logger = logging.getLogger(__name__)


class Sniper:
    def __init__(self, settings: Settings, registry: TicketRegistry, outbox: ChannelOutbox):
        self.settings = settings
        self.registry = registry
        self.outbox = outbox
        self._processing: set[str] = set()

    async def handle(self, event: ChatEvent) -> bool:
        """Reply to an acceptable offer and store it as a pending wager."""
        bet = extract_bet(event.content)
        if bet is None:
            return False

        user_id = event.author.id
        if not bet.is_even:
            logger.info(f"Ignoring uneven offer {bet.amount1}v{bet.amount2} from {user_id}")
            return False

        validation = validate_bet_amount(bet.opponent, self.settings.betting_limits)
        if not validation.valid:
            logger.info(f"Bet ignored from {user_id}: {validation.reason}")
            return False

        if self.registry.is_user_in_active_ticket(user_id):
            logger.info(f"Bet ignored: {user_id} already in an active ticket")
            return False
        if self.registry.is_on_cooldown(user_id):
            logger.info(f"Bet ignored: {user_id} on cooldown")
            return False

        channel_ticket = self.registry.get_ticket(event.channel.id)
        if channel_ticket is not None and not channel_ticket.is_terminal:
            return False

        if user_id in self._processing:
            return False
        self._processing.add(user_id)

        try:
            # Cooldown first so a second offer during the send is ignored
            self.registry.set_cooldown(user_id)

            our_bet = calculate_our_bet(bet.opponent, self.settings.tax_percentage)
            response = (
                self.settings.response_templates.bet_offer
                .replace("{calculated}", format_usd(our_bet))
                .replace("{base}", format_usd(bet.opponent))
            )

            sent = await self.outbox.send(event.channel.id, response, reply_to=event.id)
            if not sent:
                return False

            self.registry.store_pending_wager(
                user_id=user_id,
                opponent_bet=bet.opponent,
                our_bet=our_bet,
                source_channel_id=event.channel.id,
                username=event.author.username,
                message_id=event.id,
                bet_terms_raw=event.content,
            )
            logger.info(
                f"Sniped bet from {user_id} in {event.channel.id}: "
                f"{format_usd(bet.opponent)} vs our {format_usd(our_bet)}"
            )
            return True
        finally:
            self._processing.discard(user_id)
