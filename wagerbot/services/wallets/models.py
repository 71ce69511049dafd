from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class TransferResult(BaseModel):
    """Outcome of a wallet send."""

    success: bool
    tx_id: str | None = None
    error: str | None = None
    error_kind: str | None = None
    attempts: int = 0

    def __str__(self) -> str:
        if self.success:
            return f"TransferResult(success=True, tx_id={self.tx_id})"
        return f"TransferResult(success=False, error={self.error})"


class Receipt(BaseModel):
    """Incoming transaction to the wallet's own address."""

    tx_id: str
    amount: Decimal
    timestamp: datetime
    confirmations: int = 0
