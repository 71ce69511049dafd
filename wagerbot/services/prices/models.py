from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

PriceSource = Literal["coinbase", "coingecko"]


class CachedPrice(BaseModel):
    """Last accepted price for one network."""

    network: str
    price: Decimal
    source: PriceSource
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at
