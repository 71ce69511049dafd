"""Discord service config."""

from pydantic import BaseModel


class DiscordConfig(BaseModel):
    """Discord config."""

    token: str = ""
    mention_on_reply: bool = False
