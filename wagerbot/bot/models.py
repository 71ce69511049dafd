"""Platform-neutral chat events consumed by the router."""

from typing import Literal, Protocol

from pydantic import BaseModel, Field

ChannelType = Literal["text", "dm", "thread", "other"]


class ChannelInfo(BaseModel):
    id: str
    name: str = ""
    type: ChannelType = "text"


class AuthorInfo(BaseModel):
    id: str
    username: str = ""
    bot: bool = False


class ChatEvent(BaseModel):
    """One inbound chat message."""

    id: str
    channel: ChannelInfo
    author: AuthorInfo
    content: str = ""
    mentions: list[str] = Field(default_factory=list)


class ChatTransport(Protocol):
    """Outbound side of the chat platform."""

    @property
    def bot_user_id(self) -> str: ...

    async def send_message(
        self,
        channel_id: str,
        content: str,
        reply_to: str | None = None,
    ) -> None: ...
