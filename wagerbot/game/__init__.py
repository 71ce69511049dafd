from .dice import format_roll, roll_die
from .tracker import GameRound, RoundOutcome, ScoreTracker, Scores

__all__ = [
    "roll_die",
    "format_roll",
    "ScoreTracker",
    "GameRound",
    "RoundOutcome",
    "Scores",
]
