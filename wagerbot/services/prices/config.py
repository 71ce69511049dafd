from decimal import Decimal

from pydantic import BaseModel, Field


class PriceSafetyConfig(BaseModel):
    """Deviation and hard-bound guards applied to fresh prices."""

    max_deviation_percentage: Decimal = Decimal("25")
    hard_min_price: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "LTC": Decimal("10"),
            "SOL": Decimal("5"),
            "BTC": Decimal("5000"),
        }
    )
    hard_max_price: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "LTC": Decimal("2000"),
            "SOL": Decimal("5000"),
            "BTC": Decimal("1000000"),
        }
    )


class PriceOracleConfig(BaseModel):
    """Configuration for the spot price providers."""

    coinbase_url: str = "https://api.coinbase.com/v2/prices/{network}-USD/spot"
    coingecko_url: str = "https://api.coingecko.com/api/v3/simple/price"
    timeout_seconds: float = 5.0
    cache_ttl_seconds: float = 300.0
    stale_substitute_seconds: float = 6 * 60 * 60
