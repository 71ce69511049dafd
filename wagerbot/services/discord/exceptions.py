"""Discord service exceptions."""

from wagerbot.exceptions import ChatTransportError, ConfigInvalidError


class DiscordConfigError(ConfigInvalidError):
    """Missing or unusable Discord credentials."""

    pass


class DiscordSendError(ChatTransportError):
    """A message could not be delivered to a channel."""

    pass
