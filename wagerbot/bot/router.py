"""Inbound message routing."""

import logging
from collections import OrderedDict

from wagerbot.config import Settings
from wagerbot.networks import NETWORKS
from wagerbot.tickets import TicketRegistry

from .models import ChannelInfo, ChatEvent, ChatTransport
from .outbox import ChannelOutbox
from .sniper import Sniper
from .ticket_handler import TicketHandler

logger = logging.getLogger(__name__)

WALLET_COMMAND = "!wallet"
DEDUP_CAPACITY = 500


class MessageRouter:
    """Hands each chat event to the first component that consumes it.

    Order: own messages, DM wallet command, foreign bots, existing tickets,
    ticket channel detection, monitored-channel filter, sniper.
    """

    def __init__(
        self,
        settings: Settings,
        transport: ChatTransport,
        registry: TicketRegistry,
        ticket_handler: TicketHandler,
        sniper: Sniper,
        outbox: ChannelOutbox,
        dedup_capacity: int = DEDUP_CAPACITY,
    ):
        self.settings = settings
        self.transport = transport
        self.registry = registry
        self.ticket_handler = ticket_handler
        self.sniper = sniper
        self.outbox = outbox
        self.dedup_capacity = dedup_capacity
        self._seen: OrderedDict[str, None] = OrderedDict()

    def _already_seen(self, message_id: str) -> bool:
        if message_id in self._seen:
            return True
        self._seen[message_id] = None
        if len(self._seen) > self.dedup_capacity:
            self._seen.popitem(last=False)
        return False

    async def route(self, event: ChatEvent) -> bool:
        if self._already_seen(event.id):
            logger.debug(f"Skipping duplicate message {event.id}")
            return False

        try:
            return await self._route(event)
        except Exception:
            logger.exception(
                f"Error handling message {event.id} in {event.channel.id} "
                f"from {event.author.id}"
            )
            return False

    async def _route(self, event: ChatEvent) -> bool:
        author = event.author
        if author.id == self.transport.bot_user_id:
            return False

        if event.channel.type == "dm":
            return await self._handle_dm(event)

        if author.bot and author.id not in self.settings.dice_bot_ids:
            return False

        channel = event.channel
        if self.registry.get_ticket(channel.id) is not None:
            return await self.ticket_handler.handle(event)

        if self.ticket_handler.is_ticket_channel(channel):
            return await self.ticket_handler.handle(event)

        monitored = self.settings.monitored_channels
        if monitored and channel.id not in monitored:
            return False

        return await self.sniper.handle(event)

    async def _handle_dm(self, event: ChatEvent) -> bool:
        if event.content.strip().lower() != WALLET_COMMAND:
            return False

        lines = ["**💰 My Wallet Addresses:**", ""]
        for network in NETWORKS:
            address = self.settings.payout_address(network) or "Not configured"
            lines.append(f"**{network}:** `{address}`")

        await self.outbox.send(event.channel.id, "\n".join(lines), reply_to=event.id)
        logger.info(f"Wallet addresses sent via DM to {event.author.id}")
        return True

    async def on_channel_created(self, channel: ChannelInfo) -> None:
        try:
            await self.ticket_handler.handle_channel_created(channel)
        except Exception:
            logger.exception(f"Error handling new channel {channel.id}")

    async def on_channel_deleted(self, channel_id: str) -> None:
        try:
            await self.ticket_handler.handle_channel_deleted(channel_id)
        except Exception:
            logger.exception(f"Error handling deleted channel {channel_id}")

    async def on_message_edit(self, before: ChatEvent | None, after: ChatEvent) -> None:
        if after.author.id == self.transport.bot_user_id:
            return
        try:
            await self.ticket_handler.handle_message_edit(before, after)
        except Exception:
            logger.exception(f"Error handling edit of message {after.id}")
