from .client import PriceOracle
from .config import PriceOracleConfig, PriceSafetyConfig
from .models import CachedPrice, PriceSource

__all__ = [
    "PriceOracle",
    "PriceOracleConfig",
    "PriceSafetyConfig",
    "CachedPrice",
    "PriceSource",
]
