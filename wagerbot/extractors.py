"""Pure text parsers for bets, addresses, game starts, dice and confirmations."""

import re
from collections.abc import Iterable
from decimal import Decimal

from pydantic import BaseModel

BET_PATTERN = re.compile(
    r"\b\$?(\d+(?:\.\d{1,2})?)\s*(?:v|vs)\s*\$?(\d+(?:\.\d{1,2})?)\b",
    re.IGNORECASE,
)

ADDRESS_PATTERNS: dict[str, re.Pattern[str]] = {
    "LTC": re.compile(r"^(L|M|3)[a-km-zA-HJ-NP-Z1-9]{26,33}$|^ltc1[a-z0-9]{39,59}$"),
    "SOL": re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$"),
    "BTC": re.compile(r"^(1|3)[a-km-zA-HJ-NP-Z1-9]{25,34}$|^bc1[a-z0-9]{39,59}$"),
}

GAME_START_PATTERN = re.compile(
    r"<@!?(\d+)>\s*(?:goes?\s*)?first|first:?\s*<@!?(\d+)>",
    re.IGNORECASE,
)
BOT_FIRST_PATTERN = re.compile(r"\b(?:bot|you)\s+(?:go(?:es)?\s+)?first\b", re.IGNORECASE)

DICE_RESULT_PATTERN = re.compile(
    r"(?:rolled?\s*(?:a\s*)?|🎲\s*|\[\s*)([1-6])(?:\s*\])?",
    re.IGNORECASE,
)
BOLD_DICE_PATTERN = re.compile(r"\*\*([1-6])\*\*")
MENTION_PATTERN = re.compile(r"<@!?(\d+)>")

PAYMENT_CONFIRM_PATTERNS = [
    re.compile(r"\bconfirmed\b", re.IGNORECASE),
    re.compile(r"\breceived\b", re.IGNORECASE),
    re.compile(r"\bgot\s*(?:it|payment)\b", re.IGNORECASE),
    re.compile(r"\bpaid\b", re.IGNORECASE),
    re.compile(r"\bboth\s*paid\b", re.IGNORECASE),
    re.compile(r"\bgl\b", re.IGNORECASE),
    re.compile(r"\bgood\s*luck\b", re.IGNORECASE),
    re.compile(r"\bstart\s*(?:the\s*)?game\b", re.IGNORECASE),
    re.compile(r"\bready\b", re.IGNORECASE),
]

ADDRESS_STRIP_CHARS = re.compile(r"[`<>.,;:\"'!?()\[\]{}]")

ROLL_COMMAND_PATTERN = re.compile(r"\b(?:roll|dice|your\s+turn)\b", re.IGNORECASE)
RESET_PATTERN = re.compile(r"\breset\b", re.IGNORECASE)

# Prefix of every roll message the bot emits itself
ROLL_PREFIX = "🎲 Roll:"


class BetMatch(BaseModel):
    """Parsed ``XvY`` offer; ``opponent`` is the left amount."""

    opponent: Decimal
    amount1: Decimal
    amount2: Decimal

    @property
    def is_even(self) -> bool:
        return self.amount1 == self.amount2


class GameStart(BaseModel):
    user_id: str | None = None
    bot_first: bool = False


class DiceResult(BaseModel):
    value: int
    target_id: str | None = None


def extract_bet(text: str) -> BetMatch | None:
    match = BET_PATTERN.search(text or "")
    if not match:
        return None
    amount1 = Decimal(match.group(1))
    amount2 = Decimal(match.group(2))
    return BetMatch(opponent=amount1, amount1=amount1, amount2=amount2)


def is_valid_address(address: str, network: str) -> bool:
    pattern = ADDRESS_PATTERNS.get((network or "").upper())
    if not pattern or not address:
        return False
    return bool(pattern.match(address.strip()))


def extract_address(text: str, network: str) -> str | None:
    """Return the first whitespace-delimited token that is a valid address."""
    if (network or "").upper() not in ADDRESS_PATTERNS:
        return None
    for word in (text or "").split():
        cleaned = ADDRESS_STRIP_CHARS.sub("", word)
        if cleaned and is_valid_address(cleaned, network):
            return cleaned
    return None


def extract_game_start(text: str, bot_id: str | None = None) -> GameStart | None:
    """Return who was declared first, or None when no declaration is present."""
    text = text or ""
    match = GAME_START_PATTERN.search(text)
    if match:
        user_id = match.group(1) or match.group(2)
        return GameStart(user_id=user_id, bot_first=bool(bot_id) and user_id == bot_id)
    if BOT_FIRST_PATTERN.search(text):
        return GameStart(user_id=bot_id, bot_first=True)
    return None


def extract_dice_result(text: str, mentions: Iterable[str] | None = None) -> DiceResult | None:
    text = text or ""
    match = DICE_RESULT_PATTERN.search(text) or BOLD_DICE_PATTERN.search(text)
    if not match:
        return None

    target_id: str | None = None
    mention_ids = list(mentions or []) or MENTION_PATTERN.findall(text)
    if mention_ids:
        target_id = mention_ids[0]
    return DiceResult(value=int(match.group(1)), target_id=target_id)


def is_own_roll(text: str) -> bool:
    return (text or "").startswith(ROLL_PREFIX)


def is_payment_confirmation(text: str) -> bool:
    return any(pattern.search(text or "") for pattern in PAYMENT_CONFIRM_PATTERNS)


def is_cancellation(text: str, keywords: Iterable[str]) -> bool:
    lower = (text or "").lower()
    return any(keyword.lower() in lower for keyword in keywords if keyword)


def is_roll_command(text: str) -> bool:
    return bool(ROLL_COMMAND_PATTERN.search(text or ""))


def is_reset_command(text: str) -> bool:
    return bool(RESET_PATTERN.search(text or ""))
