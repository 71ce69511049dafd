"""Discord chat transport."""

from .client import DiscordChatClient, to_channel_info, to_chat_event
from .config import DiscordConfig
from .exceptions import DiscordConfigError, DiscordSendError

__all__ = [
    "DiscordChatClient",
    "DiscordConfig",
    "DiscordConfigError",
    "DiscordSendError",
    "to_channel_info",
    "to_chat_event",
]
