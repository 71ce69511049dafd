from pydantic import BaseModel


class WalletConfig(BaseModel):
    """Configuration for explorer and RPC backed wallets."""

    blockcypher_base_url: str = "https://api.blockcypher.com/v1"
    blockcypher_token: str = ""
    fee_preference: str = "medium"
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    timeout_seconds: float = 15.0
    max_retries: int = 3
    retry_backoff_seconds: float = 2.0
    receipts_limit: int = 20
