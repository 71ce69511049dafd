"""Solana wallet over JSON-RPC with solders transaction signing."""

from __future__ import annotations

import base64
import itertools
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from wagerbot.exceptions import BroadcastFailedError, InsufficientBalanceError, RPCError
from wagerbot.networks import from_base_units, to_base_units

from .base import Wallet
from .config import WalletConfig
from .exceptions import InvalidSignatureError
from .models import Receipt

logger = logging.getLogger(__name__)


class SolanaWallet(Wallet):
    network = "SOL"

    def __init__(
        self,
        address: str,
        private_key: str = "",
        config: WalletConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(address, config, http_client)
        self._private_key = private_key
        self._ids = itertools.count(1)

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        response = await self.client.post(
            self.config.solana_rpc_url,
            json=payload,
            timeout=self.config.timeout_seconds,
        )
        if response.status_code == 429 or response.status_code >= 500:
            raise RPCError(
                f"Solana RPC {method} returned {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError:
            raise RPCError(f"Solana RPC {method} returned non-JSON body", response.status_code)

        error = data.get("error")
        if error:
            message = str(error.get("message", error)) if isinstance(error, dict) else str(error)
            lowered = message.lower()
            if "insufficient" in lowered:
                raise InsufficientBalanceError(message)
            if "signature" in lowered:
                raise InvalidSignatureError(message)
            raise RPCError(f"Solana RPC {method} failed: {message}")
        return data.get("result")

    def _keypair(self) -> Keypair:
        if not self._private_key:
            raise InvalidSignatureError("No SOL private key configured")
        try:
            return Keypair.from_base58_string(self._private_key.strip())
        except ValueError as e:
            raise InvalidSignatureError(f"Invalid SOL private key: {e}")

    async def balance(self) -> Decimal:
        result = await self._rpc("getBalance", [self.address, {"commitment": "confirmed"}])
        return from_base_units(int(result["value"]), self.network)

    async def recent_receipts(self, limit: int = 20) -> list[Receipt]:
        signatures = await self._rpc(
            "getSignaturesForAddress", [self.address, {"limit": limit}]
        )
        receipts: list[Receipt] = []

        for entry in signatures or []:
            if entry.get("err") is not None:
                continue
            tx = await self._rpc(
                "getTransaction",
                [
                    entry["signature"],
                    {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0},
                ],
            )
            if not tx or not tx.get("meta"):
                continue

            received = _incoming_lamports(tx, self.address)
            if received <= 0:
                continue

            block_time = tx.get("blockTime") or entry.get("blockTime")
            timestamp = (
                datetime.fromtimestamp(block_time, tz=timezone.utc)
                if block_time
                else datetime.now(timezone.utc)
            )
            status = entry.get("confirmationStatus")
            receipts.append(
                Receipt(
                    tx_id=entry["signature"],
                    amount=from_base_units(received, self.network),
                    timestamp=timestamp,
                    confirmations=1 if status in ("confirmed", "finalized") else 0,
                )
            )

        receipts.sort(key=lambda r: r.timestamp, reverse=True)
        return receipts

    async def _broadcast(self, to_address: str, amount: Decimal) -> str:
        keypair = self._keypair()
        if str(keypair.pubkey()) != self.address:
            logger.warning(
                f"SOL key pubkey {keypair.pubkey()} differs from payout address {self.address}"
            )

        latest = await self._rpc("getLatestBlockhash", [{"commitment": "finalized"}])
        blockhash = Hash.from_string(latest["value"]["blockhash"])

        instruction = transfer(
            TransferParams(
                from_pubkey=keypair.pubkey(),
                to_pubkey=Pubkey.from_string(to_address),
                lamports=to_base_units(amount, self.network),
            )
        )
        message = Message.new_with_blockhash([instruction], keypair.pubkey(), blockhash)
        transaction = Transaction([keypair], message, blockhash)
        encoded = base64.b64encode(bytes(transaction)).decode("ascii")

        signature = await self._rpc(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": "confirmed"}],
        )
        if not signature:
            raise BroadcastFailedError("Solana sendTransaction returned no signature")
        return str(signature)


def _incoming_lamports(tx: dict[str, Any], address: str) -> int:
    meta = tx["meta"]
    account_keys = tx.get("transaction", {}).get("message", {}).get("accountKeys", [])
    keys = [k["pubkey"] if isinstance(k, dict) else k for k in account_keys]
    if address not in keys:
        return 0
    index = keys.index(address)
    return int(meta["postBalances"][index]) - int(meta["preBalances"][index])
