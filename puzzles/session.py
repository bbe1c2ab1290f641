"""
Timed scoring session: the state machine a front end drives.

A PuzzleSession owns the clock, streak, score, and current puzzle for one
player. It asks the progression engine which chunk to use, pulls the chunk
from the shared ChunkCache, and judges submitted moves by exact string
match against the puzzle's solution line.

State machine:
    IDLE -> IN_PROGRESS -> CORRECT | INCORRECT -> IN_PROGRESS ... -> GAME_OVER

GAME_OVER is terminal until reset(). The session never owns a scheduler:
the front end calls tick() periodically and the remaining time is derived
from the real time elapsed between ticks.

No method raises across this boundary. Unavailable chunks come back as
None and moves on an idle or finished session as an incorrect result.
"""

import logging
import math
import random
import time
from typing import Callable

from puzzles.cache import ChunkCache
from puzzles.constants import (
    BASE_POINTS,
    FALLBACK_GOAL,
    MATE_THEMES,
    MAX_SPEED_BONUS,
    MAX_STREAK_MULTIPLIER,
    SESSION_SECONDS,
    SPEED_WINDOW_SECONDS,
    STREAK_STEP,
    TACTICAL_MOTIFS,
    TIER_FILE_NAMES,
    TUTORIAL,
)
from puzzles.models import (
    ChunkRef,
    FinalScore,
    MoveResult,
    PuzzleRecord,
    PuzzleView,
    SessionState,
)
from puzzles.progression import resolve

_log = logging.getLogger(__name__)


def calculate_puzzle_score(
    streak: int,
    time_to_solve: float,
    base_points: int = BASE_POINTS,
) -> int:
    """
    Points for one completed puzzle.

    streak_multiplier = min(3, 1 + streak * 0.1)   (caps around streak 20)
    speed_bonus       = max(1, 2 - seconds / 15)   (no bonus past 15s)

    Rounds half up, so the result lies in [base_points, 6 * base_points].

    Example:
        >>> calculate_puzzle_score(10, 0.0)
        400
    """
    streak_multiplier = min(MAX_STREAK_MULTIPLIER, 1 + streak * STREAK_STEP)
    speed_bonus = max(1.0, MAX_SPEED_BONUS - time_to_solve / SPEED_WINDOW_SECONDS)
    return math.floor(base_points * streak_multiplier * speed_bonus + 0.5)


def side_to_move(fen: str) -> str:
    """White when the FEN's active-colour field is "w", Black otherwise."""
    fields = fen.split()
    return "White" if len(fields) > 1 and fields[1] == "w" else "Black"


def goal_text(puzzle: PuzzleRecord) -> str:
    """
    Human-readable objective, e.g. "White to move – Mate in 2".

    Mate themes win over tactical motifs; among motifs the first one in
    TACTICAL_MOTIFS order that the puzzle carries is named.
    """
    side = side_to_move(puzzle.fen)
    themes = puzzle.theme_list

    for theme, label in MATE_THEMES:
        if theme in themes:
            return f"{side} to move – {label}"

    for motif in TACTICAL_MOTIFS:
        if motif in themes:
            return f"{side} to move – Find the {motif}"

    return f"{side} to move – {FALLBACK_GOAL}"


class PuzzleSession:
    """
    One player's timed run.

    Attributes:
        current_tier:     Tier of the last served puzzle (or the mode override).
        current_streak:   Consecutive full solves; reset by any wrong move.
        current_score:    Points accumulated this session.
        remaining_time:   Seconds left, never below 0.
        solve_start_time: Clock reading when the current puzzle started.
        last_tick_time:   Clock reading at the previous tick.
        current_puzzle:   The puzzle being solved, or None.
        current_ref:      Chunk the current puzzle came from.
    """

    def __init__(
        self,
        cache: ChunkCache,
        total_seconds: float = SESSION_SECONDS,
        base_points: int = BASE_POINTS,
        chunk_count: Callable[[str], int | None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self.cache = cache
        self.total_seconds = total_seconds
        self.base_points = base_points
        self._chunk_count = chunk_count
        self._clock = clock
        self._rng = rng or random.Random()

        self.current_tier: str = TUTORIAL
        self.current_streak: int = 0
        self.current_score: int = 0
        self.remaining_time: float = total_seconds
        self.solve_start_time: float | None = None
        self.last_tick_time: float | None = None
        self.current_puzzle: PuzzleRecord | None = None
        self.current_ref: ChunkRef | None = None
        self._state: SessionState = SessionState.IDLE

    # -----------------------------------------------------------------------
    # Clock
    # -----------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        if self.is_game_over():
            return SessionState.GAME_OVER
        return self._state

    def start_puzzle_timer(self) -> None:
        """Mark the solve start; the tick clock is anchored on the first call only."""
        now = self._clock()
        self.solve_start_time = now
        if self.last_tick_time is None:
            self.last_tick_time = now

    def tick(self) -> float:
        """
        Subtract the real time since the previous tick from remaining_time.

        Returns:
            The updated remaining time in seconds (floored at 0).
        """
        now = self._clock()
        if self.last_tick_time is None:
            # Timer never started: anchor it, nothing has elapsed yet.
            self.last_tick_time = now
            return self.remaining_time

        elapsed = now - self.last_tick_time
        self.remaining_time = max(0.0, self.remaining_time - elapsed)
        self.last_tick_time = now
        if self.remaining_time <= 0:
            _log.info("Session out of time: score=%d streak=%d",
                      self.current_score, self.current_streak)
        return self.remaining_time

    def is_game_over(self) -> bool:
        return self.remaining_time <= 0

    # -----------------------------------------------------------------------
    # Puzzles
    # -----------------------------------------------------------------------

    async def next_puzzle(self) -> PuzzleView | None:
        """
        Serve a random puzzle from the chunk chosen for the current streak.

        Returns:
            The puzzle view, or None when the session is over or the chunk
            is unavailable (the front end should show an error state).
        """
        if self.is_game_over():
            return None

        ref = resolve(self.current_streak)
        ref = self._clamp(ref)
        self.current_tier = ref.tier

        chunk = await self.cache.get(ref.tier, ref.chunk_index)
        if not chunk:
            _log.warning("No puzzles available for %s", ref.cache_key)
            return None

        puzzle = self._rng.choice(chunk)
        self.current_puzzle = puzzle
        self.current_ref = ref
        self._state = SessionState.IN_PROGRESS
        self.start_puzzle_timer()

        return PuzzleView(
            fen=puzzle.fen,
            moves=puzzle.move_list,
            rating=puzzle.rating,
            themes=puzzle.theme_list,
            goal_text=goal_text(puzzle),
            tier=ref.tier,
            chunk_index=ref.chunk_index,
        )

    def _clamp(self, ref: ChunkRef) -> ChunkRef:
        # Known chunk counts cap the index at the last existing chunk.
        if self._chunk_count is None:
            return ref
        count = self._chunk_count(ref.tier)
        if not count:
            return ref
        return ChunkRef(ref.tier, min(ref.chunk_index, count - 1))

    def submit_move(self, move: str, move_index: int) -> MoveResult:
        """
        Judge one move of the solution line.

        A correct final move scores the puzzle (using the streak before
        the increment), bumps the streak, and retires the puzzle. A correct
        earlier move just reports progress. A wrong move resets the streak
        but keeps the puzzle so the front end can decide what to do next.
        """
        if self.is_game_over() or self.current_puzzle is None:
            return MoveResult(correct=False, complete=False)

        solution = self.current_puzzle.move_list
        is_correct = 0 <= move_index < len(solution) and move == solution[move_index]

        if not is_correct:
            self.current_streak = 0
            self._state = SessionState.INCORRECT
            return MoveResult(correct=False, complete=False)

        if move_index < len(solution) - 1:
            self._state = SessionState.IN_PROGRESS
            return MoveResult(correct=True, complete=False)

        now = self._clock()
        started = self.solve_start_time if self.solve_start_time is not None else now
        time_to_solve = now - started
        score = calculate_puzzle_score(self.current_streak, time_to_solve, self.base_points)

        self.current_score += score
        self.current_streak += 1
        self.current_puzzle = None
        self._state = SessionState.CORRECT

        return MoveResult(
            correct=True,
            complete=True,
            score=score,
            time_to_solve=time_to_solve,
            streak=self.current_streak,
            total_score=self.current_score,
            remaining_time=self.remaining_time,
        )

    # -----------------------------------------------------------------------
    # Overrides
    # -----------------------------------------------------------------------

    def get_final_score(self) -> FinalScore:
        # puzzles_solved mirrors the streak, so it drops back to 0 after a miss.
        return FinalScore(
            score=self.current_score,
            streak=self.current_streak,
            puzzles_solved=self.current_streak,
        )

    def set_mode(self, tier: str) -> bool:
        """
        Switch tier and reset the streak.

        The next call to next_puzzle() resolves the tier from the streak
        again, so the override only lasts until then.

        Returns:
            False (and no change) for an unknown tier.
        """
        if tier not in TIER_FILE_NAMES:
            _log.warning("Ignoring unknown puzzle mode %r", tier)
            return False
        self.current_tier = tier
        self.current_streak = 0
        return True

    def reset(self) -> None:
        """Return to IDLE with a full clock and a zero score."""
        self.current_tier = TUTORIAL
        self.current_streak = 0
        self.current_score = 0
        self.remaining_time = self.total_seconds
        self.solve_start_time = None
        self.last_tick_time = None
        self.current_puzzle = None
        self.current_ref = None
        self._state = SessionState.IDLE
