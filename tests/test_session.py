"""Tests for PuzzleSession: scoring, goal text, clock, and the move state machine."""

import random

import pytest

from puzzles.cache import ChunkCache
from puzzles.constants import CORE_LOOP, SPICE, TUTORIAL
from puzzles.decoder import ChunkDecoder
from puzzles.models import MoveResult, PuzzleRecord, SessionState
from puzzles.session import PuzzleSession, calculate_puzzle_score, goal_text, side_to_move
from tests.conftest import CDN, START_FEN, gzip_chunk, record

BLACK_FEN = "r1bqkbnr/pppp1ppp/2n5/4p3/4P3/5N2/PPPP1PPP/RNBQKB1R b KQkq - 2 2"


@pytest.fixture
def session(fetcher, clock) -> PuzzleSession:
    cache = ChunkCache(fetcher, ChunkDecoder(), cdn_base=CDN)
    return PuzzleSession(cache, clock=clock, rng=random.Random(7))


def _puzzle(**kwargs) -> PuzzleRecord:
    return PuzzleRecord.model_validate(record(**kwargs))


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "streak, seconds, expected",
    [
        (0, 15.0, 100),   # 1x multiplier, no speed bonus
        (0, 0.0, 200),    # full speed bonus
        (10, 0.0, 400),   # 2x multiplier, 2x bonus
        (5, 5.0, 250),
        (30, 0.0, 600),   # multiplier clamps at 3x
        (30, 60.0, 300),  # speed bonus floors at 1x
        (20, 15.0, 300),
    ],
)
def test_calculate_puzzle_score(streak, seconds, expected):
    assert calculate_puzzle_score(streak, seconds) == expected


def test_score_rounds_half_up():
    assert calculate_puzzle_score(0, 7.5) == 150
    assert calculate_puzzle_score(1, 13.5, base_points=1) == 1  # 1.21
    assert calculate_puzzle_score(0, 14.25, base_points=10) == 11  # 10.5 -> 11


# ---------------------------------------------------------------------------
# Goal text
# ---------------------------------------------------------------------------


def test_goal_text_mate():
    assert goal_text(_puzzle(themes="mateIn2 middlegame")) == "White to move – Mate in 2"


def test_goal_text_motif_for_black():
    assert goal_text(_puzzle(fen=BLACK_FEN, themes="fork attack")) == "Black to move – Find the fork"


def test_goal_text_fallback():
    assert goal_text(_puzzle(themes="endgame advantage")) == "White to move – Find the best tactic"


def test_goal_text_priority():
    assert goal_text(_puzzle(themes="fork mateIn3 mateIn1")) == "White to move – Mate in 1"
    assert goal_text(_puzzle(themes="doubleCheck skewer pin")) == "White to move – Find the pin"


def test_side_to_move_treats_anything_but_w_as_black():
    assert side_to_move(START_FEN) == "White"
    assert side_to_move(BLACK_FEN) == "Black"
    assert side_to_move("garbage") == "Black"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


def test_initial_state(session):
    assert session.current_score == 0
    assert session.current_streak == 0
    assert session.remaining_time == 60
    assert session.current_tier == TUTORIAL
    assert session.state is SessionState.IDLE


def test_tick_subtracts_elapsed_time(session):
    session.start_puzzle_timer()
    session.last_tick_time -= 1.0
    assert session.tick() == pytest.approx(59.0)
    assert session.remaining_time == pytest.approx(59.0)


def test_tick_uses_real_elapsed_between_ticks(session, clock):
    session.start_puzzle_timer()
    clock.advance(2.5)
    session.tick()
    clock.advance(0.5)
    assert session.tick() == pytest.approx(57.0)


def test_tick_floors_at_zero(session, clock):
    session.start_puzzle_timer()
    clock.advance(90)
    assert session.tick() == 0
    assert session.is_game_over()
    assert session.state is SessionState.GAME_OVER


def test_tick_before_timer_start_only_anchors(session, clock):
    assert session.tick() == 60
    clock.advance(1)
    assert session.tick() == pytest.approx(59.0)


def test_start_puzzle_timer_anchors_tick_clock_once(session, clock):
    session.start_puzzle_timer()
    anchor = session.last_tick_time
    clock.advance(5)
    session.start_puzzle_timer()
    assert session.last_tick_time == anchor
    assert session.solve_start_time == anchor + 5


def test_game_over_boundary(session):
    session.remaining_time = 0
    assert session.is_game_over()
    session.remaining_time = 1e-9
    assert not session.is_game_over()


# ---------------------------------------------------------------------------
# Serving puzzles
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_next_puzzle_returns_view(session, clock):
    view = await session.next_puzzle()
    assert view.fen == START_FEN
    assert view.moves == ["e2e4", "e7e5"]
    assert view.rating == 1500
    assert view.themes == ["mateIn1", "middlegame"]
    assert view.goal_text == "White to move – Mate in 1"
    assert view.tier == TUTORIAL
    assert session.state is SessionState.IN_PROGRESS
    assert session.solve_start_time == clock.now


@pytest.mark.asyncio
async def test_next_puzzle_follows_progression(session, store):
    store.add("core-loop/coreLoop-0.json.gz", gzip_chunk([record(themes="mateIn2")]))
    store.add("spice/spice-0.json.gz", gzip_chunk([record(themes="fork")]))

    session.current_streak = 3
    view = await session.next_puzzle()
    assert view.tier == CORE_LOOP
    assert session.current_tier == CORE_LOOP

    session.current_streak = 12
    view = await session.next_puzzle()
    assert view.tier == SPICE
    assert view.goal_text == "White to move – Find the fork"


@pytest.mark.asyncio
async def test_next_puzzle_unavailable_chunk_returns_none(session):
    session.current_streak = 500
    assert await session.next_puzzle() is None
    assert session.current_puzzle is None


@pytest.mark.asyncio
async def test_empty_chunk_is_unavailable(session, store):
    store.add("tutorial/tutorial-0.json.gz", gzip_chunk([]))
    assert await session.next_puzzle() is None


@pytest.mark.asyncio
async def test_known_chunk_count_clamps_index(fetcher, clock, store):
    store.add("core-loop/coreLoop-1.json.gz", gzip_chunk([record(themes="mateIn2")]))
    cache = ChunkCache(fetcher, ChunkDecoder(), cdn_base=CDN)
    session = PuzzleSession(cache, clock=clock, chunk_count=lambda tier: 2)
    session.current_streak = 40  # resolves to core-loop-6
    view = await session.next_puzzle()
    assert (view.tier, view.chunk_index) == (CORE_LOOP, 1)


@pytest.mark.asyncio
async def test_next_puzzle_refused_after_game_over(session, store):
    session.remaining_time = 0
    assert await session.next_puzzle() is None
    assert store.requests == []


# ---------------------------------------------------------------------------
# Submitting moves
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_full_solve_scores_and_extends_streak(session, clock):
    await session.next_puzzle()

    first = session.submit_move("e2e4", 0)
    assert first == MoveResult(correct=True, complete=False)

    clock.advance(3.0)
    result = session.submit_move("e7e5", 1)
    assert result.correct and result.complete
    assert result.score == 180  # 100 * 1.0 * (2 - 3/15)
    assert result.time_to_solve == pytest.approx(3.0)
    assert result.streak == 1
    assert result.total_score == 180
    assert result.remaining_time == 60
    assert session.current_streak == 1
    assert session.state is SessionState.CORRECT
    assert session.current_puzzle is None


@pytest.mark.asyncio
async def test_score_uses_streak_before_increment(session):
    session.current_streak = 10
    session.current_puzzle = _puzzle(moves="h5f7")
    session.start_puzzle_timer()
    result = session.submit_move("h5f7", 0)
    assert result.score == 400
    assert result.streak == 11


@pytest.mark.asyncio
async def test_wrong_move_resets_streak_and_keeps_puzzle(session):
    await session.next_puzzle()
    session.current_streak = 4
    puzzle = session.current_puzzle

    result = session.submit_move("d2d4", 0)
    assert result == MoveResult(correct=False, complete=False)
    assert session.current_streak == 0
    assert session.current_puzzle is puzzle
    assert session.state is SessionState.INCORRECT


@pytest.mark.asyncio
async def test_wrong_move_at_later_index(session):
    await session.next_puzzle()
    session.current_streak = 2
    assert session.submit_move("e2e4", 0).correct
    assert not session.submit_move("e2e4", 1).correct
    assert session.current_streak == 0


def test_out_of_range_index_is_incorrect(session):
    session.current_puzzle = _puzzle()
    assert not session.submit_move("e2e4", 5).correct
    assert not session.submit_move("e7e5", -1).correct


def test_no_active_puzzle_fails_softly(session):
    session.current_streak = 3
    assert session.submit_move("e2e4", 0) == MoveResult(correct=False, complete=False)
    assert session.current_streak == 3


def test_moves_ignored_after_game_over(session):
    session.current_puzzle = _puzzle()
    session.current_streak = 6
    session.remaining_time = 0
    assert not session.submit_move("e2e4", 0).correct
    assert session.current_streak == 6


# ---------------------------------------------------------------------------
# Overrides and final score
# ---------------------------------------------------------------------------


def test_final_score_counts_solves_as_streak(session):
    session.current_score = 750
    session.current_streak = 4
    final = session.get_final_score()
    assert (final.score, final.streak, final.puzzles_solved) == (750, 4, 4)


def test_set_mode_resets_streak(session):
    session.current_streak = 9
    assert session.set_mode("boss")
    assert session.current_tier == "boss"
    assert session.current_streak == 0


def test_set_mode_rejects_unknown_tier(session):
    session.current_streak = 9
    assert not session.set_mode("blitz")
    assert session.current_streak == 9
    assert session.current_tier == TUTORIAL


@pytest.mark.asyncio
async def test_reset_restores_defaults(session, clock):
    await session.next_puzzle()
    session.submit_move("e2e4", 0)
    session.submit_move("e7e5", 1)
    clock.advance(70)
    session.tick()
    assert session.state is SessionState.GAME_OVER

    session.reset()
    assert session.current_score == 0
    assert session.current_streak == 0
    assert session.remaining_time == 60
    assert session.last_tick_time is None
    assert session.solve_start_time is None
    assert session.current_tier == TUTORIAL
    assert session.state is SessionState.IDLE
    assert await session.next_puzzle() is not None
