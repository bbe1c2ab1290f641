"""
Data model: puzzle records as stored on the content store, and the value
objects the session hands back to a front end.

PuzzleRecord mirrors the CSV columns of the source puzzle database (FEN,
Moves, Rating, Themes) and is validated with pydantic when a chunk is
decoded. Everything else is a plain dataclass owned by the session.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class PuzzleRecord(BaseModel):
    """
    One puzzle as decoded from a chunk file.

    Fields:
        fen:    Starting position in FEN.
        moves:  Space-separated solution moves in UCI notation.
        rating: Puzzle rating (stored as a numeric string in chunk files).
        themes: Space-separated theme tags (mateIn2, fork, endgame, ...).

    Records are frozen: once a chunk is decoded, nothing mutates them.
    Unknown columns from the source database are ignored.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    fen: str = Field(alias="FEN")
    moves: str = Field(alias="Moves")
    rating: int = Field(alias="Rating")
    themes: str = Field(alias="Themes")

    @property
    def move_list(self) -> list[str]:
        return self.moves.split()

    @property
    def theme_list(self) -> list[str]:
        return self.themes.split()


# A chunk is an ordered, immutable batch of puzzles from one tier.
Chunk = tuple[PuzzleRecord, ...]


class ChunkRef(NamedTuple):
    """Address of a chunk on the content store."""

    tier: str
    chunk_index: int

    @property
    def cache_key(self) -> str:
        return f"{self.tier}-{self.chunk_index}"


class SessionState(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    CORRECT = "correct"
    INCORRECT = "incorrect"
    GAME_OVER = "game_over"


@dataclass(frozen=True)
class PuzzleView:
    """What a front end needs to render the current puzzle."""

    fen: str
    moves: list[str]
    rating: int
    themes: list[str]
    goal_text: str
    tier: str
    chunk_index: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MoveResult:
    """
    Outcome of one submitted move.

    Only completed solves carry the scoring fields; in-progress and
    incorrect results leave them as None.
    """

    correct: bool
    complete: bool
    score: int | None = None
    time_to_solve: float | None = None
    streak: int | None = None
    total_score: int | None = None
    remaining_time: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FinalScore:
    score: int
    streak: int
    puzzles_solved: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
