"""Network-agnostic wallet capability with retrying sends."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

import httpx

from wagerbot.exceptions import (
    InsufficientBalanceError,
    InvalidAddressError,
    RPCError,
    WagerBotError,
)
from wagerbot.extractors import is_valid_address

from .config import WalletConfig
from .exceptions import InvalidSignatureError
from .models import Receipt, TransferResult

logger = logging.getLogger(__name__)

NON_RETRYABLE = (InsufficientBalanceError, InvalidSignatureError, InvalidAddressError)


class Wallet(ABC):
    """Balance, receipts and payments for one network and one own address."""

    network: str = ""

    def __init__(
        self,
        address: str,
        config: WalletConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.address = address
        self.config = config or WalletConfig()
        self._client = http_client
        self._owns_client = False

    async def __aenter__(self) -> Wallet:
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
            logger.info(f"Closed {self.network} wallet")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} must be used as async context manager")
        return self._client

    def validate_address(self, address: str) -> bool:
        return is_valid_address(address, self.network)

    @abstractmethod
    async def balance(self) -> Decimal:
        """Confirmed balance of the own address in coin units."""

    @abstractmethod
    async def recent_receipts(self, limit: int = 20) -> list[Receipt]:
        """Incoming transactions to the own address, newest first."""

    @abstractmethod
    async def _broadcast(self, to_address: str, amount: Decimal) -> str:
        """Build, sign and broadcast one transfer; return its tx id."""

    async def send_payment(self, to_address: str, amount: Decimal) -> TransferResult:
        """Send ``amount`` coins, retrying transient failures with linear backoff."""
        if not self.validate_address(to_address):
            return TransferResult(
                success=False,
                error=f"Invalid {self.network} address: {to_address}",
                error_kind=InvalidAddressError.kind,
            )
        if amount <= 0:
            return TransferResult(
                success=False,
                error=f"Amount must be positive: {amount}",
                error_kind="BroadcastFailed",
            )

        last_error: Exception | None = None
        attempts = 0
        while attempts < self.config.max_retries:
            attempts += 1
            try:
                tx_id = await self._broadcast(to_address, amount)
                logger.info(
                    f"Broadcast {amount} {self.network} to {to_address}: {tx_id} "
                    f"(attempt {attempts})"
                )
                return TransferResult(success=True, tx_id=tx_id, attempts=attempts)
            except NON_RETRYABLE as e:
                logger.error(f"{self.network} send failed without retry: {e}")
                return TransferResult(
                    success=False, error=str(e), error_kind=e.kind, attempts=attempts
                )
            except (WagerBotError, httpx.HTTPError) as e:
                last_error = e
                if attempts < self.config.max_retries:
                    wait_time = self.config.retry_backoff_seconds * attempts
                    logger.warning(
                        f"{self.network} send attempt {attempts} failed: {e}, "
                        f"retrying in {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)

        kind = getattr(last_error, "kind", RPCError.kind)
        return TransferResult(
            success=False,
            error=f"Send failed after {attempts} attempts: {last_error}",
            error_kind="BroadcastFailed" if kind == RPCError.kind else kind,
            attempts=attempts,
        )
