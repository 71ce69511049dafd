"""First-to-N dice score tracker with pending-roll semantics."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Side = Literal["bot", "opponent"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Scores(CamelModel):
    bot: int = 0
    opponent: int = 0


class GameRound(CamelModel):
    number: int
    bot_roll: int
    opponent_roll: int
    winner: Side | Literal["tie"]
    scores_after: Scores
    timestamp: datetime


class RoundOutcome(BaseModel):
    round_winner: Side | Literal["tie"]
    game_over: bool
    scores: Scores


class ScoreTracker(CamelModel):
    """Serializable game state stored inside a ticket."""

    ticket_id: str
    wins_needed: int = 5
    bot_wins_ties: bool = True
    bot_goes_first: bool = False
    scores: Scores = Field(default_factory=Scores)
    rounds: list[GameRound] = Field(default_factory=list)
    pending_bot_roll: int | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    winner: Side | None = None

    @property
    def is_complete(self) -> bool:
        return self.winner is not None

    @property
    def did_bot_win(self) -> bool:
        return self.winner == "bot"

    @property
    def formatted_score(self) -> str:
        return f"{self.scores.bot}-{self.scores.opponent}"

    def set_pending_bot_roll(self, value: int) -> None:
        if self.pending_bot_roll is not None:
            raise ValueError(f"Bot roll already pending ({self.pending_bot_roll})")
        self.pending_bot_roll = value

    def take_pending_bot_roll(self) -> int | None:
        value = self.pending_bot_roll
        self.pending_bot_roll = None
        return value

    def record_round(self, bot_roll: int, opponent_roll: int) -> RoundOutcome:
        if self.is_complete:
            raise ValueError(f"Game {self.ticket_id} is already complete")
        for roll in (bot_roll, opponent_roll):
            if not 1 <= roll <= 6:
                raise ValueError(f"Dice value out of range: {roll}")

        if bot_roll > opponent_roll:
            round_winner = "bot"
        elif opponent_roll > bot_roll:
            round_winner = "opponent"
        elif self.bot_wins_ties:
            round_winner = "bot"
        else:
            round_winner = "tie"

        if round_winner == "bot":
            self.scores.bot += 1
        elif round_winner == "opponent":
            self.scores.opponent += 1

        self.rounds.append(
            GameRound(
                number=len(self.rounds) + 1,
                bot_roll=bot_roll,
                opponent_roll=opponent_roll,
                winner=round_winner,
                scores_after=self.scores.model_copy(),
                timestamp=datetime.now(timezone.utc),
            )
        )

        if self.scores.bot >= self.wins_needed:
            self.winner = "bot"
        elif self.scores.opponent >= self.wins_needed:
            self.winner = "opponent"
        if self.winner:
            self.completed_at = datetime.now(timezone.utc)

        return RoundOutcome(
            round_winner=round_winner,
            game_over=self.is_complete,
            scores=self.scores.model_copy(),
        )

    def to_state(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_state(cls, data: dict) -> "ScoreTracker":
        return cls.model_validate(data)
