"""Supported payout networks and their unit conventions."""

from decimal import ROUND_CEILING, Decimal
from typing import Literal

Network = Literal["LTC", "SOL", "BTC"]

NETWORKS: tuple[str, ...] = ("LTC", "SOL", "BTC")

# Decimal places of the smallest on-chain unit (satoshi / litoshi / lamport)
UNIT_DECIMALS: dict[str, int] = {"LTC": 8, "BTC": 8, "SOL": 9}

COINGECKO_IDS: dict[str, str] = {"LTC": "litecoin", "SOL": "solana", "BTC": "bitcoin"}


def to_base_units(amount: Decimal, network: str) -> int:
    """Convert a coin amount to integer base units, rounding up."""
    scale = Decimal(10) ** UNIT_DECIMALS[network]
    return int((amount * scale).to_integral_value(rounding=ROUND_CEILING))


def from_base_units(units: int, network: str) -> Decimal:
    """Convert integer base units back to a coin amount."""
    return Decimal(units) / (Decimal(10) ** UNIT_DECIMALS[network])
