"""Ordered admission pipeline wrapping every outgoing crypto payment."""

import asyncio
import logging
import secrets
from decimal import Decimal

import httpx

from wagerbot.config import PaymentSafetyConfig, Settings
from wagerbot.exceptions import (
    BroadcastFailedError,
    DailyLimitExceededError,
    DisallowedAddressError,
    DuplicatePaymentError,
    InsufficientBalanceError,
    InvalidAddressError,
    PersistenceFailureError,
    PriceUnavailableError,
    TxLimitExceededError,
    WagerBotError,
)
from wagerbot.services.prices import PriceOracle
from wagerbot.services.wallets import Wallet
from wagerbot.storage.ledger import IdempotencyLedger, PaymentState, make_payment_id

from .models import PaymentResult

logger = logging.getLogger(__name__)


def _failure(error: WagerBotError, **extra) -> PaymentResult:
    return PaymentResult(success=False, error=error.message, error_kind=error.kind, **extra)


class PaymentGate:
    """Admission checks run in order; the first failure or explicit success wins.

    1. simulation mode  2. live-transfer flag  3. idempotency
    4. allowlist  5. per-tx cap  6. daily cap  7. conversion  8. balance

    Only then is the intent recorded, the wallet broadcast attempted and the
    outcome written back to the ledger.
    """

    def __init__(
        self,
        ledger: IdempotencyLedger,
        oracle: PriceOracle,
        wallet: Wallet,
        safety: PaymentSafetyConfig | None = None,
        simulation_mode: bool = False,
        live_transfers: bool = False,
    ):
        self.ledger = ledger
        self.oracle = oracle
        self.wallet = wallet
        self.safety = safety or PaymentSafetyConfig()
        self.simulation_mode = simulation_mode
        self.live_transfers = live_transfers

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        ledger: IdempotencyLedger,
        oracle: PriceOracle,
        wallet: Wallet,
    ) -> "PaymentGate":
        return cls(
            ledger=ledger,
            oracle=oracle,
            wallet=wallet,
            safety=settings.payment_safety,
            simulation_mode=settings.simulation_mode,
            live_transfers=settings.live_transfers_enabled,
        )

    async def send_payment(
        self,
        to_address: str,
        usd_amount: Decimal,
        network: str,
        ticket_id: str,
    ) -> PaymentResult:
        usd_amount = Decimal(usd_amount)

        if self.simulation_mode:
            tx_id = f"simulated_tx_{secrets.token_hex(8)}"
            logger.info(f"[SIMULATION] ${usd_amount} {network} to {to_address}: {tx_id}")
            return PaymentResult(success=True, tx_id=tx_id, simulated=True)

        if not self.live_transfers:
            tx_id = f"dryrun_tx_{secrets.token_hex(8)}"
            logger.info(
                f"[DRY RUN] Live transfers disabled; ${usd_amount} {network} "
                f"to {to_address}: {tx_id}"
            )
            return PaymentResult(success=True, tx_id=tx_id, dry_run=True)

        payment_id = make_payment_id(ticket_id, to_address, usd_amount)
        check = self.ledger.can_send(payment_id)
        if not check.allowed:
            logger.warning(
                f"Duplicate payment {payment_id} blocked ({check.reason}); "
                f"returning existing tx {check.existing_tx_id}"
            )
            return PaymentResult(
                success=True,
                tx_id=check.existing_tx_id,
                duplicate=True,
                payment_id=payment_id,
            )

        allowlist = self.safety.address_allowlist
        if allowlist and to_address not in allowlist:
            logger.error(f"Destination {to_address} is not on the allowlist")
            return _failure(
                DisallowedAddressError(f"Address {to_address} is not on the allowlist"),
                payment_id=payment_id,
            )

        if usd_amount > self.safety.max_payment_per_tx:
            return _failure(
                TxLimitExceededError(
                    f"${usd_amount} exceeds per-transaction cap "
                    f"${self.safety.max_payment_per_tx}"
                ),
                payment_id=payment_id,
            )

        spent_today = self.ledger.daily_spend()
        if spent_today + usd_amount > self.safety.max_daily_usd:
            return _failure(
                DailyLimitExceededError(
                    f"${usd_amount} would exceed daily cap ${self.safety.max_daily_usd} "
                    f"(spent today ${spent_today})"
                ),
                payment_id=payment_id,
            )

        try:
            crypto_amount = await self.oracle.convert_usd_to_crypto(usd_amount, network)
        except WagerBotError as e:
            logger.error(f"Price conversion failed for {network}: {e}")
            return _failure(
                PriceUnavailableError(f"Price unavailable for {network}: {e.message}"),
                payment_id=payment_id,
            )

        try:
            balance = await self.wallet.balance()
            if balance < crypto_amount:
                return _failure(
                    InsufficientBalanceError(
                        f"Balance {balance} {network} is below required {crypto_amount:.8f}"
                    ),
                    payment_id=payment_id,
                    crypto_amount=crypto_amount,
                )
        except (WagerBotError, httpx.HTTPError) as e:
            logger.warning(f"Balance check failed for {network}, proceeding: {e}")

        if not self.wallet.validate_address(to_address):
            return _failure(
                InvalidAddressError(f"Invalid {network} address: {to_address}"),
                payment_id=payment_id,
            )

        try:
            admitted = self._record_intent(payment_id, to_address, usd_amount, ticket_id)
        except PersistenceFailureError as e:
            logger.error(f"Could not record payment intent {payment_id}: {e}")
            return _failure(e, payment_id=payment_id)
        if not admitted:
            return _failure(
                DuplicatePaymentError(
                    f"Payment {payment_id} was broadcast before failing; operator review required"
                ),
                payment_id=payment_id,
            )

        # Once the intent is recorded the send runs to completion even if the caller is cancelled
        return await asyncio.shield(
            self._broadcast(payment_id, to_address, crypto_amount, network)
        )

    def _record_intent(
        self,
        payment_id: str,
        to_address: str,
        usd_amount: Decimal,
        ticket_id: str,
    ) -> bool:
        existing = self.ledger.get(payment_id)
        if existing is None:
            return self.ledger.record_intent(payment_id, to_address, usd_amount, ticket_id)
        if existing.state == PaymentState.FAILED:
            logger.info(f"Retrying failed payment {payment_id}")
            return self.ledger.reopen(payment_id)
        logger.info(f"Resuming pending payment {payment_id}")
        return True

    async def _broadcast(
        self,
        payment_id: str,
        to_address: str,
        crypto_amount: Decimal,
        network: str,
    ) -> PaymentResult:
        try:
            result = await self.wallet.send_payment(to_address, crypto_amount)
        except Exception as e:
            logger.exception(f"Broadcast raised for payment {payment_id}")
            self._mark_failed(payment_id, str(e))
            return _failure(
                BroadcastFailedError(f"Broadcast failed: {e}"),
                payment_id=payment_id,
                crypto_amount=crypto_amount,
            )

        if not result.success or not result.tx_id:
            error = result.error or "wallet returned no transaction id"
            self._mark_failed(payment_id, error)
            logger.error(f"Payment {payment_id} failed: {error}")
            return PaymentResult(
                success=False,
                error=error,
                error_kind=result.error_kind or BroadcastFailedError.kind,
                payment_id=payment_id,
                crypto_amount=crypto_amount,
            )

        try:
            self.ledger.record_broadcast(payment_id, result.tx_id)
            self.ledger.record_confirmed(payment_id)
        except PersistenceFailureError as e:
            logger.critical(
                f"Payment {payment_id} broadcast as {result.tx_id} but ledger write failed: {e}"
            )
        logger.info(
            f"Payment {payment_id} sent: {crypto_amount:.8f} {network} "
            f"to {to_address} (tx {result.tx_id})"
        )
        return PaymentResult(
            success=True,
            tx_id=result.tx_id,
            payment_id=payment_id,
            crypto_amount=crypto_amount,
        )

    def _mark_failed(self, payment_id: str, error: str) -> None:
        try:
            self.ledger.record_failed(payment_id, error)
        except PersistenceFailureError as e:
            logger.error(f"Could not persist failure of payment {payment_id}: {e}")
