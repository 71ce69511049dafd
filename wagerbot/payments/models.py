from decimal import Decimal

from pydantic import BaseModel


class PaymentResult(BaseModel):
    """Outcome of a payment gate admission and send."""

    success: bool
    tx_id: str | None = None
    dry_run: bool = False
    simulated: bool = False
    duplicate: bool = False
    payment_id: str | None = None
    crypto_amount: Decimal | None = None
    error: str | None = None
    error_kind: str | None = None

    def __str__(self) -> str:
        if self.success:
            flags = [name for name in ("dry_run", "simulated", "duplicate") if getattr(self, name)]
            suffix = f" ({', '.join(flags)})" if flags else ""
            return f"PaymentResult(success=True, tx_id={self.tx_id}){suffix}"
        return f"PaymentResult(success=False, {self.error_kind}: {self.error})"
