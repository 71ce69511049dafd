from wagerbot.exceptions import BroadcastFailedError


class InvalidSignatureError(BroadcastFailedError):
    """Node rejected the transaction signature."""

    pass
