"""Error taxonomy shared by every wagerbot component."""


class WagerBotError(Exception):
    """Base exception for wagerbot errors."""

    kind = "WagerBotError"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConfigInvalidError(WagerBotError):
    """Configuration failed validation."""

    kind = "ConfigInvalid"


class ChatTransportError(WagerBotError):
    """Chat platform send or fetch failed."""

    kind = "ChatTransport"


class PriceUnavailableError(WagerBotError):
    """No provider returned a price and no cached value exists."""

    kind = "PriceUnavailable"


class PriceOutOfBoundsError(WagerBotError):
    """Fetched price is outside the configured hard bounds."""

    kind = "PriceOutOfBounds"


class PriceDeviationExceededError(WagerBotError):
    """Fetched price moved too far from an old cached price."""

    kind = "PriceDeviationExceeded"


class RPCError(WagerBotError):
    """Blockchain explorer or node call failed."""

    kind = "RPCError"


class InsufficientBalanceError(WagerBotError):
    """Wallet balance does not cover the requested amount."""

    kind = "InsufficientBalance"


class DisallowedAddressError(WagerBotError):
    """Destination is not on the address allowlist."""

    kind = "DisallowedAddress"


class TxLimitExceededError(WagerBotError):
    """Amount exceeds the per-transaction cap."""

    kind = "TxLimitExceeded"


class DailyLimitExceededError(WagerBotError):
    """Amount would push today's spend over the daily cap."""

    kind = "DailyLimitExceeded"


class InvalidAddressError(WagerBotError):
    """Address does not match the network's format."""

    kind = "InvalidAddress"


class DuplicatePaymentError(WagerBotError):
    """Payment id was already broadcast."""

    kind = "DuplicatePayment"

    def __init__(self, message: str, existing_tx_id: str | None = None):
        super().__init__(message)
        self.existing_tx_id = existing_tx_id


class BroadcastFailedError(WagerBotError):
    """Transaction build, sign or broadcast failed."""

    kind = "BroadcastFailed"


class InvalidStateTransitionError(WagerBotError):
    """Ticket transition outside the permitted graph."""

    kind = "InvalidStateTransition"


class PersistenceFailureError(WagerBotError):
    """State or ledger file could not be written or read."""

    kind = "PersistenceFailure"
