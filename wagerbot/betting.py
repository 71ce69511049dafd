"""Bet arithmetic and acceptance rules."""

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

from wagerbot.config import BettingLimits

CENT = Decimal("0.01")


class BetValidation(BaseModel):
    valid: bool
    reason: str = ""


def round2(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_our_bet(opponent_bet: Decimal, tax_percentage: Decimal) -> Decimal:
    """Our stake is the opponent's stake plus the tax surcharge, to the cent."""
    return round2(Decimal(opponent_bet) * (Decimal(1) + Decimal(tax_percentage)))


def validate_bet_amount(amount: Decimal, limits: BettingLimits) -> BetValidation:
    if amount <= 0:
        return BetValidation(valid=False, reason="Bet must be positive")
    if amount < limits.min:
        return BetValidation(valid=False, reason=f"Bet ${amount} is below minimum ${limits.min}")
    if amount > limits.max:
        return BetValidation(valid=False, reason=f"Bet ${amount} is above maximum ${limits.max}")
    return BetValidation(valid=True)


def pot_of(opponent_bet: Decimal, our_bet: Decimal) -> Decimal:
    return round2(Decimal(opponent_bet) + Decimal(our_bet))


def format_usd(amount: Decimal) -> str:
    return f"${round2(amount):.2f}"
