"""Cryptographically strong dice rolls."""

import secrets

DICE_FACES = ["⚀", "⚁", "⚂", "⚃", "⚄", "⚅"]


def roll_die() -> int:
    return secrets.randbelow(6) + 1


def format_roll(value: int) -> str:
    return f"{DICE_FACES[value - 1]} **{value}**"
