"""USD spot price oracle with provider failover and safety bands."""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable

import httpx

from wagerbot.exceptions import (
    PriceDeviationExceededError,
    PriceOutOfBoundsError,
    PriceUnavailableError,
)
from wagerbot.networks import COINGECKO_IDS, NETWORKS

from .config import PriceOracleConfig, PriceSafetyConfig
from .models import CachedPrice, PriceSource

logger = logging.getLogger(__name__)


class PriceOracle:
    def __init__(
        self,
        config: PriceOracleConfig | None = None,
        safety: PriceSafetyConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or PriceOracleConfig()
        self.safety = safety or PriceSafetyConfig()
        self._client = http_client
        self._owns_client = False
        self._clock = clock
        self._cache: dict[str, CachedPrice] = {}

    async def __aenter__(self) -> PriceOracle:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
            self._owns_client = True
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("PriceOracle must be used as async context manager")
        return self._client

    def cached(self, network: str) -> CachedPrice | None:
        return self._cache.get(network.upper())

    async def price_of(self, network: str) -> Decimal:
        """Return the USD price of one coin, from cache when fresh."""
        net = network.upper()
        if net not in NETWORKS:
            raise PriceUnavailableError(f"Unsupported network: {network}")

        now = self._clock()
        cached = self._cache.get(net)
        if cached and cached.age(now) < self.config.cache_ttl_seconds:
            return cached.price

        fetched = await self._fetch(net)
        if fetched is None:
            if cached:
                logger.warning(
                    f"All price providers failed for {net}, "
                    f"using cached ${cached.price} ({cached.age(now):.0f}s old)"
                )
                return cached.price
            raise PriceUnavailableError(f"Failed to fetch price for {net} from all providers")

        price, source = fetched

        if cached and cached.price > 0:
            deviation = abs(price - cached.price) / cached.price * 100
            if deviation > self.safety.max_deviation_percentage:
                logger.error(
                    f"Price deviation for {net}: fetched ${price} vs cached "
                    f"${cached.price} ({deviation:.2f}%)"
                )
                if cached.age(now) <= self.config.stale_substitute_seconds:
                    logger.warning(f"Returning previous cached price for {net}: ${cached.price}")
                    return cached.price
                raise PriceDeviationExceededError(
                    f"Price deviation too high for {net} ({deviation:.2f}%)"
                )

        hard_min = self.safety.hard_min_price.get(net)
        hard_max = self.safety.hard_max_price.get(net)
        if hard_min is not None and price < hard_min:
            raise PriceOutOfBoundsError(
                f"Price for {net} (${price}) is below hard minimum (${hard_min})"
            )
        if hard_max is not None and price > hard_max:
            raise PriceOutOfBoundsError(
                f"Price for {net} (${price}) is above hard maximum (${hard_max})"
            )

        self._cache[net] = CachedPrice(network=net, price=price, source=source, fetched_at=now)
        logger.info(f"Updated price for {net}: ${price} ({source})")
        return price

    async def convert_usd_to_crypto(self, usd_amount: Decimal, network: str) -> Decimal:
        """Convert USD to coin units. Callers round up to base units when sending."""
        price = await self.price_of(network)
        return Decimal(usd_amount) / price

    async def prefetch(self, network: str) -> None:
        """Warm the cache; errors are logged and dropped."""
        try:
            await self.price_of(network)
            logger.debug(f"Price cache warmed for {network}")
        except Exception as e:
            logger.debug(f"Price prefetch failed for {network}: {e}")

    async def _fetch(self, net: str) -> tuple[Decimal, PriceSource] | None:
        price = await self._bounded("Coinbase", net, self._fetch_coinbase(net))
        if price is not None:
            return price, "coinbase"

        logger.warning(f"Coinbase failed or timed out for {net}, failing over to CoinGecko")
        price = await self._bounded("CoinGecko", net, self._fetch_coingecko(net))
        if price is not None:
            return price, "coingecko"
        return None

    async def _bounded(
        self, provider: str, net: str, call: Awaitable[Decimal | None]
    ) -> Decimal | None:
        # httpx timeouts are per phase; this caps the whole provider call
        try:
            return await asyncio.wait_for(call, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"{provider} fetch for {net} exceeded {self.config.timeout_seconds}s")
            return None

    async def _fetch_coinbase(self, net: str) -> Decimal | None:
        url = self.config.coinbase_url.format(network=net)
        try:
            response = await self.client.get(url, timeout=self.config.timeout_seconds)
            response.raise_for_status()
            return _positive_decimal(response.json()["data"]["amount"])
        except httpx.TimeoutException:
            logger.warning(f"Coinbase fetch timed out for {net}")
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Coinbase fetch failed for {net}: {e}")
        return None

    async def _fetch_coingecko(self, net: str) -> Decimal | None:
        coin_id = COINGECKO_IDS.get(net)
        if not coin_id:
            return None
        params = {"ids": coin_id, "vs_currencies": "usd"}
        try:
            response = await self.client.get(
                self.config.coingecko_url,
                params=params,
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            return _positive_decimal(response.json()[coin_id]["usd"])
        except httpx.TimeoutException:
            logger.warning(f"CoinGecko fetch timed out for {net}")
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"CoinGecko fetch failed for {net}: {e}")
        return None


def _positive_decimal(value: Any) -> Decimal | None:
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price
