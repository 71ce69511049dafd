from .base import Wallet
from .blockcypher import BlockCypherWallet
from .config import WalletConfig
from .exceptions import InvalidSignatureError
from .factory import create_wallet
from .models import Receipt, TransferResult
from .solana import SolanaWallet

__all__ = [
    "Wallet",
    "BlockCypherWallet",
    "SolanaWallet",
    "create_wallet",
    "WalletConfig",
    "InvalidSignatureError",
    "Receipt",
    "TransferResult",
]
