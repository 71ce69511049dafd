"""Litecoin and Bitcoin wallets backed by the BlockCypher REST API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import base58
import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

from wagerbot.exceptions import BroadcastFailedError, InsufficientBalanceError, RPCError
from wagerbot.networks import from_base_units, to_base_units

from .base import Wallet
from .config import WalletConfig
from .exceptions import InvalidSignatureError
from .models import Receipt

logger = logging.getLogger(__name__)

SECP256K1_ORDER = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16
)


def private_key_from_wif(wif: str) -> ec.EllipticCurvePrivateKey:
    """Decode a WIF string (compressed or not) into a secp256k1 key."""
    try:
        raw = base58.b58decode_check(wif.strip())
    except ValueError as e:
        raise BroadcastFailedError(f"Invalid WIF private key: {e}")

    # version byte + 32 key bytes + optional compression flag
    if len(raw) not in (33, 34):
        raise BroadcastFailedError(f"Invalid WIF payload length: {len(raw)}")
    secret = int.from_bytes(raw[1:33], "big")
    return ec.derive_private_key(secret, ec.SECP256K1())


def sign_digest(key: ec.EllipticCurvePrivateKey, digest_hex: str) -> str:
    """Sign a 32-byte digest and return a low-S DER signature as hex."""
    signature = key.sign(bytes.fromhex(digest_hex), ec.ECDSA(Prehashed(hashes.SHA256())))
    r, s = decode_dss_signature(signature)
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s
    return encode_dss_signature(r, s).hex()


def compressed_pubkey_hex(key: ec.EllipticCurvePrivateKey) -> str:
    return key.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    ).hex()


class BlockCypherWallet(Wallet):
    """UTXO wallet using BlockCypher's two-step ``txs/new`` / ``txs/send`` flow."""

    COINS = {"LTC": "ltc", "BTC": "btc"}

    def __init__(
        self,
        network: str,
        address: str,
        private_key_wif: str = "",
        config: WalletConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        if network not in self.COINS:
            raise ValueError(f"BlockCypherWallet does not support {network}")
        self.network = network
        super().__init__(address, config, http_client)
        self._private_key_wif = private_key_wif

    @property
    def base_url(self) -> str:
        return f"{self.config.blockcypher_base_url}/{self.COINS[self.network]}/main"

    def _params(self, **extra: Any) -> dict[str, Any]:
        params = dict(extra)
        if self.config.blockcypher_token:
            params["token"] = self.config.blockcypher_token
        return params

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self.client.request(
            method,
            f"{self.base_url}/{path.lstrip('/')}",
            params=self._params(**(params or {})),
            json=json_data,
            timeout=self.config.timeout_seconds,
        )

        if response.status_code == 429 or response.status_code >= 500:
            raise RPCError(
                f"BlockCypher {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            raise RPCError(f"BlockCypher {path} returned non-JSON body", response.status_code)

        if response.status_code >= 400:
            _raise_for_errors(data, response.status_code)
            raise BroadcastFailedError(
                f"BlockCypher {path} rejected request: {data}",
                status_code=response.status_code,
            )
        return data

    async def balance(self) -> Decimal:
        data = await self._request("GET", f"addrs/{self.address}/balance")
        return from_base_units(int(data.get("balance", 0)), self.network)

    async def recent_receipts(self, limit: int = 20) -> list[Receipt]:
        data = await self._request("GET", f"addrs/{self.address}/full", params={"limit": limit})
        receipts: list[Receipt] = []

        for tx in data.get("txs", []):
            senders = {
                addr for tx_in in tx.get("inputs", []) for addr in tx_in.get("addresses") or []
            }
            if self.address in senders:
                continue

            value = sum(
                int(out.get("value", 0))
                for out in tx.get("outputs", [])
                if self.address in (out.get("addresses") or [])
            )
            if value <= 0:
                continue

            receipts.append(
                Receipt(
                    tx_id=tx["hash"],
                    amount=from_base_units(value, self.network),
                    timestamp=_parse_time(tx.get("received") or tx.get("confirmed")),
                    confirmations=int(tx.get("confirmations", 0)),
                )
            )

        receipts.sort(key=lambda r: r.timestamp, reverse=True)
        return receipts[:limit]

    async def _broadcast(self, to_address: str, amount: Decimal) -> str:
        if not self._private_key_wif:
            raise InvalidSignatureError(f"No {self.network} private key configured")
        key = private_key_from_wif(self._private_key_wif)

        skeleton = await self._request(
            "POST",
            "txs/new",
            json_data={
                "inputs": [{"addresses": [self.address]}],
                "outputs": [
                    {"addresses": [to_address], "value": to_base_units(amount, self.network)}
                ],
                "preference": self.config.fee_preference,
            },
        )
        _raise_for_errors(skeleton, 200)

        tosign: list[str] = skeleton.get("tosign") or []
        if not tosign:
            raise BroadcastFailedError("BlockCypher returned nothing to sign")

        pubkey = compressed_pubkey_hex(key)
        skeleton["signatures"] = [sign_digest(key, digest) for digest in tosign]
        skeleton["pubkeys"] = [pubkey] * len(tosign)

        sent = await self._request("POST", "txs/send", json_data=skeleton)
        tx_hash = (sent.get("tx") or {}).get("hash")
        if not tx_hash:
            raise BroadcastFailedError(f"BlockCypher send returned no hash: {sent}")
        return tx_hash


def _raise_for_errors(data: dict[str, Any], status_code: int) -> None:
    messages = [str(e.get("error", e)) for e in data.get("errors") or []]
    if data.get("error"):
        messages.append(str(data["error"]))
    if not messages:
        return

    text = "; ".join(messages)
    lowered = text.lower()
    if "funds" in lowered or "insufficient" in lowered:
        raise InsufficientBalanceError(text, status_code=status_code)
    if "signature" in lowered:
        raise InvalidSignatureError(text, status_code=status_code)
    raise BroadcastFailedError(text, status_code=status_code)


def _parse_time(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
