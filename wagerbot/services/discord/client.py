"""Discord gateway client bridging discord.py events to the message router."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from wagerbot.bot.models import AuthorInfo, ChannelInfo, ChatEvent

from .config import DiscordConfig
from .exceptions import DiscordConfigError, DiscordSendError

if TYPE_CHECKING:
    from wagerbot.bot.router import MessageRouter

logger = logging.getLogger(__name__)


def to_channel_info(channel: discord.abc.Messageable | discord.abc.GuildChannel) -> ChannelInfo:
    if isinstance(channel, (discord.DMChannel, discord.GroupChannel)):
        channel_type = "dm"
    elif isinstance(channel, discord.Thread):
        channel_type = "thread"
    elif isinstance(channel, discord.TextChannel):
        channel_type = "text"
    else:
        channel_type = "other"
    return ChannelInfo(
        id=str(channel.id),
        name=getattr(channel, "name", None) or "",
        type=channel_type,
    )


def to_chat_event(message: discord.Message) -> ChatEvent:
    return ChatEvent(
        id=str(message.id),
        channel=to_channel_info(message.channel),
        author=AuthorInfo(
            id=str(message.author.id),
            username=message.author.name,
            bot=message.author.bot,
        ),
        content=message.content or "",
        mentions=[str(user.id) for user in message.mentions],
    )


class DiscordChatClient(discord.Client):
    """Chat transport backed by a discord.py gateway connection."""

    def __init__(self, config: DiscordConfig | None = None, token: str | None = None):
        self.config = config or DiscordConfig()
        if token:
            self.config.token = token
        if not self.config.token:
            raise DiscordConfigError("DISCORD_TOKEN is required")

        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        super().__init__(intents=intents)

        self._router: MessageRouter | None = None

    def attach(self, router: MessageRouter) -> None:
        self._router = router

    @property
    def router(self) -> MessageRouter:
        if self._router is None:
            raise RuntimeError("DiscordChatClient has no router attached")
        return self._router

    @property
    def bot_user_id(self) -> str:
        return str(self.user.id) if self.user else ""

    async def run_forever(self) -> None:
        """Log in and process gateway events until the connection closes."""
        async with self:
            await self.start(self.config.token)

    async def send_message(
        self,
        channel_id: str,
        content: str,
        reply_to: str | None = None,
    ) -> None:
        try:
            channel = self.get_channel(int(channel_id)) or await self.fetch_channel(int(channel_id))
            reference = None
            if reply_to:
                reference = discord.MessageReference(
                    message_id=int(reply_to),
                    channel_id=int(channel_id),
                    fail_if_not_exists=False,
                )
            await channel.send(
                content,
                reference=reference,
                mention_author=self.config.mention_on_reply,
            )
        except discord.HTTPException as e:
            logger.warning(f"Discord send to {channel_id} failed: {e}")
            raise DiscordSendError(f"Failed to send to {channel_id}: {e}", status_code=e.status)
        except (AttributeError, ValueError) as e:
            raise DiscordSendError(f"Channel {channel_id} is not messageable: {e}")

    async def on_ready(self) -> None:
        logger.info(f"Logged in as {self.user} ({self.bot_user_id}) in {len(self.guilds)} guilds")

    async def on_message(self, message: discord.Message) -> None:
        await self.router.route(to_chat_event(message))

    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        await self.router.on_message_edit(to_chat_event(before), to_chat_event(after))

    async def on_guild_channel_create(self, channel: discord.abc.GuildChannel) -> None:
        await self.router.on_channel_created(to_channel_info(channel))

    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        await self.router.on_channel_deleted(str(channel.id))
