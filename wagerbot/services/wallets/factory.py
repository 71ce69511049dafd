from .base import Wallet
from .blockcypher import BlockCypherWallet
from .config import WalletConfig
from .solana import SolanaWallet


def create_wallet(
    network: str,
    address: str,
    private_key: str = "",
    config: WalletConfig | None = None,
) -> Wallet:
    """Build the wallet implementation for ``network``."""
    if network == "SOL":
        return SolanaWallet(address, private_key=private_key, config=config)
    return BlockCypherWallet(network, address, private_key_wif=private_key, config=config)
