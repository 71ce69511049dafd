"""Tests for the BlockCypher and Solana wallets using httpx.MockTransport."""

import asyncio
import base64
import json
from decimal import Decimal

import httpx
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from solders.keypair import Keypair
from solders.transaction import Transaction

from wagerbot.services.wallets import (
    BlockCypherWallet,
    SolanaWallet,
    WalletConfig,
    create_wallet,
)
from wagerbot.services.wallets.blockcypher import private_key_from_wif

OWN_LTC = "LdP8Qox1VAhCzLJNqrr74YovaWYyNBUWvL"
MM_LTC = "LY7VX5yZgVbEsL3kS9F2a8B4c5D6e7F8g9"
SENDER_LTC = "MQd1fJwqBJvwLuyhr17PhEFx1swiqDbPQS"
BTC_ADDRESS = "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"
# Well-known uncompressed WIF test vector
TEST_WIF = "5HueCGU8rMjxEXxiPuD5BDku4MkFqeZyd4dZ1jvhTVqvbTLvyTJ"
DIGEST = "a" * 64
ZERO_BLOCKHASH = "11111111111111111111111111111111"

CONFIG = WalletConfig(retry_backoff_seconds=0, blockcypher_token="tok")


def ltc_wallet(handler, private_key_wif: str = "") -> BlockCypherWallet:
    return BlockCypherWallet(
        "LTC",
        OWN_LTC,
        private_key_wif=private_key_wif,
        config=CONFIG,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def sol_wallet(handler, keypair: Keypair | None = None, address: str = "") -> SolanaWallet:
    return SolanaWallet(
        address or str(keypair.pubkey()),
        private_key=str(keypair) if keypair else "",
        config=CONFIG,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def rpc_response(payload: dict, result=None, error: dict | None = None) -> httpx.Response:
    body = {"jsonrpc": "2.0", "id": payload["id"]}
    if error is not None:
        body["error"] = error
    else:
        body["result"] = result
    return httpx.Response(200, json=body)


def solana_handler(responses: dict, calls: list[dict]):
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        calls.append(payload)
        result = responses[payload["method"]]
        if callable(result):
            result = result(payload["params"])
        return rpc_response(payload, result)

    return handler


def test_factory_picks_implementation() -> None:
    assert isinstance(create_wallet("LTC", OWN_LTC), BlockCypherWallet)
    assert isinstance(create_wallet("BTC", BTC_ADDRESS), BlockCypherWallet)
    assert isinstance(create_wallet("SOL", str(Keypair().pubkey())), SolanaWallet)
    with pytest.raises(ValueError):
        BlockCypherWallet("SOL", OWN_LTC)


def test_blockcypher_balance_uses_token() -> None:
    async def run() -> None:
        seen: list[httpx.URL] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(200, json={"balance": 150_000_000})

        wallet = ltc_wallet(handler)

        assert await wallet.balance() == Decimal("1.5")
        assert seen[0].path == f"/v1/ltc/main/addrs/{OWN_LTC}/balance"
        assert seen[0].params["token"] == "tok"

    asyncio.run(run())


def test_blockcypher_receipts_only_count_incoming_outputs() -> None:
    async def run() -> None:
        txs = [
            {
                "hash": "incoming",
                "received": "2024-05-01T12:00:00.500Z",
                "confirmations": 2,
                "inputs": [{"addresses": [SENDER_LTC]}],
                "outputs": [
                    {"addresses": [OWN_LTC], "value": 40_000_000},
                    {"addresses": [SENDER_LTC], "value": 1_000},
                ],
            },
            {
                "hash": "outgoing",
                "received": "2024-05-01T13:00:00Z",
                "inputs": [{"addresses": [OWN_LTC]}],
                "outputs": [{"addresses": [OWN_LTC], "value": 5_000}],
            },
            {
                "hash": "unrelated",
                "received": "2024-05-01T14:00:00Z",
                "inputs": [{"addresses": [SENDER_LTC]}],
                "outputs": [{"addresses": [MM_LTC], "value": 5_000}],
            },
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/full")
            return httpx.Response(200, json={"txs": txs})

        receipts = await ltc_wallet(handler).recent_receipts()

        assert [r.tx_id for r in receipts] == ["incoming"]
        assert receipts[0].amount == Decimal("0.4")
        assert receipts[0].confirmations == 2
        assert receipts[0].timestamp.tzinfo is not None

    asyncio.run(run())


def test_blockcypher_send_signs_every_digest() -> None:
    async def run() -> None:
        posted: dict[str, dict] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            if request.url.path.endswith("/txs/new"):
                posted["new"] = body
                return httpx.Response(
                    201, json={"tx": {"fees": 1000}, "tosign": [DIGEST, DIGEST]}
                )
            posted["send"] = body
            return httpx.Response(201, json={"tx": {"hash": "deadbeef"}})

        wallet = ltc_wallet(handler, private_key_wif=TEST_WIF)
        result = await wallet.send_payment(MM_LTC, Decimal("0.215625"))

        assert result.success
        assert result.tx_id == "deadbeef"
        assert result.attempts == 1
        assert posted["new"]["outputs"] == [{"addresses": [MM_LTC], "value": 21_562_500}]

        send = posted["send"]
        assert len(send["signatures"]) == 2
        assert send["pubkeys"][0][:2] in ("02", "03")

        public_key = private_key_from_wif(TEST_WIF).public_key()
        public_key.verify(
            bytes.fromhex(send["signatures"][0]),
            bytes.fromhex(DIGEST),
            ec.ECDSA(Prehashed(hashes.SHA256())),
        )

    asyncio.run(run())


def test_blockcypher_insufficient_funds_is_not_retried() -> None:
    async def run() -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            error = "Not enough funds in 1 inputs to pay for 1 outputs"
            return httpx.Response(400, json={"errors": [{"error": error}]})

        result = await ltc_wallet(handler, private_key_wif=TEST_WIF).send_payment(
            MM_LTC, Decimal("1")
        )

        assert not result.success
        assert result.error_kind == "InsufficientBalance"
        assert len(calls) == 1

    asyncio.run(run())


def test_blockcypher_server_errors_are_retried() -> None:
    async def run() -> None:
        failures = [httpx.Response(503), httpx.Response(429)]

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/txs/new"):
                if failures:
                    return failures.pop(0)
                return httpx.Response(201, json={"tx": {}, "tosign": [DIGEST]})
            return httpx.Response(201, json={"tx": {"hash": "third-time"}})

        result = await ltc_wallet(handler, private_key_wif=TEST_WIF).send_payment(
            MM_LTC, Decimal("1")
        )

        assert result.success
        assert result.tx_id == "third-time"
        assert result.attempts == 3

    asyncio.run(run())


def test_missing_key_and_bad_address_fail_fast() -> None:
    async def run() -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        wallet = ltc_wallet(handler)

        result = await wallet.send_payment(MM_LTC, Decimal("1"))
        assert not result.success
        assert result.attempts == 1
        assert "private key" in result.error

        result = await wallet.send_payment(BTC_ADDRESS, Decimal("1"))
        assert not result.success
        assert result.error_kind == "InvalidAddress"

    asyncio.run(run())


def test_solana_balance() -> None:
    async def run() -> None:
        calls: list[dict] = []
        address = str(Keypair().pubkey())
        handler = solana_handler({"getBalance": {"value": 1_500_000_000}}, calls)

        assert await sol_wallet(handler, address=address).balance() == Decimal("1.5")
        assert calls[0]["params"][0] == address

    asyncio.run(run())


def test_solana_receipts_use_balance_deltas() -> None:
    async def run() -> None:
        calls: list[dict] = []
        address = str(Keypair().pubkey())
        sender = str(Keypair().pubkey())

        def transaction(params: list) -> dict:
            delta = 250_000_000 if params[0] == "in" else -250_000_000
            return {
                "blockTime": 1_714_564_800,
                "meta": {
                    "preBalances": [5_000_000_000, 1_000_000_000],
                    "postBalances": [4_000_000_000, 1_000_000_000 + delta],
                },
                "transaction": {
                    "message": {"accountKeys": [{"pubkey": sender}, {"pubkey": address}]}
                },
            }

        responses = {
            "getSignaturesForAddress": [
                {"signature": "in", "err": None, "confirmationStatus": "finalized"},
                {"signature": "out", "err": None, "confirmationStatus": "finalized"},
                {"signature": "failed", "err": {"InstructionError": [0, "Custom"]}},
            ],
            "getTransaction": transaction,
        }
        wallet = sol_wallet(solana_handler(responses, calls), address=address)
        receipts = await wallet.recent_receipts(limit=10)

        assert [r.tx_id for r in receipts] == ["in"]
        assert receipts[0].amount == Decimal("0.25")
        assert receipts[0].confirmations == 1
        assert calls[0]["params"][1] == {"limit": 10}

    asyncio.run(run())


def test_solana_send_builds_signed_transfer() -> None:
    async def run() -> None:
        calls: list[dict] = []
        keypair = Keypair()
        responses = {
            "getLatestBlockhash": {
                "value": {"blockhash": ZERO_BLOCKHASH, "lastValidBlockHeight": 1}
            },
            "sendTransaction": "5ig",
        }
        wallet = sol_wallet(solana_handler(responses, calls), keypair=keypair)

        result = await wallet.send_payment(str(Keypair().pubkey()), Decimal("0.5"))
        assert result.success
        assert result.tx_id == "5ig"

        raw = base64.b64decode(calls[-1]["params"][0])
        transaction = Transaction.from_bytes(raw)
        assert transaction.message.account_keys[0] == keypair.pubkey()
        assert len(transaction.signatures) == 1

    asyncio.run(run())


def test_solana_rpc_errors_map_to_taxonomy() -> None:
    async def run() -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            if payload["method"] == "getLatestBlockhash":
                return rpc_response(payload, {"value": {"blockhash": ZERO_BLOCKHASH}})
            message = "Attempt to debit an account: insufficient funds for rent"
            return rpc_response(payload, error={"code": -32002, "message": message})

        wallet = sol_wallet(handler, keypair=Keypair())
        result = await wallet.send_payment(str(Keypair().pubkey()), Decimal("0.5"))

        assert not result.success
        assert result.error_kind == "InsufficientBalance"
        assert result.attempts == 1

    asyncio.run(run())


def test_solana_server_errors_are_retried() -> None:
    async def run() -> None:
        statuses = [502]

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            if statuses:
                return httpx.Response(statuses.pop(0))
            if payload["method"] == "getLatestBlockhash":
                return rpc_response(payload, {"value": {"blockhash": ZERO_BLOCKHASH}})
            return rpc_response(payload, "sig-after-retry")

        wallet = sol_wallet(handler, keypair=Keypair())
        result = await wallet.send_payment(str(Keypair().pubkey()), Decimal("0.5"))

        assert result.success
        assert result.tx_id == "sig-after-retry"
        assert result.attempts == 2

    asyncio.run(run())
