"""Chat-facing components: routing, sniping, ticket flow and payout sweeps."""

from .models import AuthorInfo, ChannelInfo, ChatEvent, ChatTransport
from .monitors import PayoutMonitor
from .outbox import ChannelOutbox
from .router import MessageRouter
from .sniper import Sniper
from .ticket_handler import TicketHandler

__all__ = [
    "AuthorInfo",
    "ChannelInfo",
    "ChatEvent",
    "ChatTransport",
    "ChannelOutbox",
    "MessageRouter",
    "PayoutMonitor",
    "Sniper",
    "TicketHandler",
]
