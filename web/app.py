"""
FastAPI web application for the chess puzzle rush.

Exposes the puzzle-facing API (new session, next puzzle, submit move, tick,
score, mode, reset) as JSON endpoints for the browser UI, which renders the
board and drives the session clock by calling /tick periodically.

Architecture notes:
- Async endpoints: every handler is I/O-bound (chunk fetches) or trivial,
  so they run on the event loop that also hosts background prefetches.
- One PuzzleManager per process: all sessions share its chunk cache. It is
  created and initialized in the lifespan hook and closed on shutdown.
- Sessions are explicit objects addressed by an opaque session id; nothing
  about a player lives in module globals. The registry holding them is
  bounded: idle and finished sessions expire, and a size cap evicts the
  least recently used one.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from puzzles.config import PuzzleConfig
from puzzles.constants import TIER_FILE_NAMES
from puzzles.manager import PuzzleManager
from puzzles.session import PuzzleSession

# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO)
_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    session_id: str
    remaining_time: float
    state: str


class PuzzleResponse(BaseModel):
    """
    The puzzle a session is currently serving.

    Fields:
        fen:       Starting position.
        moves:     Full solution line in UCI notation.
        rating:    Puzzle rating.
        themes:    Theme tags.
        goal_text: Objective shown above the board.
        tier:      Tier the puzzle came from.
        chunk_index: Chunk within the tier.
    """

    fen: str
    moves: list[str]
    rating: int
    themes: list[str]
    goal_text: str
    tier: str
    chunk_index: int


class MoveRequest(BaseModel):
    """
    A move submitted by the player.

    Fields:
        move:       Move in UCI notation (e.g. "e2e4", "e7e8q"). Compared
                    verbatim against the solution, whitespace included.
        move_index: Position of the move in the solution line.
    """

    move: str
    move_index: int


class MoveResponse(BaseModel):
    correct: bool
    complete: bool
    score: int | None = None
    time_to_solve: float | None = None
    streak: int | None = None
    total_score: int | None = None
    remaining_time: float | None = None


class TickResponse(BaseModel):
    remaining_time: float
    game_over: bool


class ScoreResponse(BaseModel):
    score: int
    streak: int
    puzzles_solved: int


class ModeRequest(BaseModel):
    tier: str


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------
# Browsers abandon sessions without sending DELETE, so the registry bounds
# itself: idle sessions expire, finished ones expire sooner, and when full
# the least recently used session makes room for a new one.

MAX_SESSIONS: int = 1_000
SESSION_IDLE_SECONDS: float = 600.0
GAME_OVER_IDLE_SECONDS: float = 60.0


class SessionRegistry:
    """
    Live sessions keyed by session id, with idle expiry and a size cap.

    Attributes:
        max_sessions:           Hard cap on live sessions.
        idle_seconds:           Any session untouched this long is dropped.
        game_over_idle_seconds: Finished sessions are dropped after this
                                long, leaving time to read the final score.
    """

    def __init__(
        self,
        max_sessions: int = MAX_SESSIONS,
        idle_seconds: float = SESSION_IDLE_SECONDS,
        game_over_idle_seconds: float = GAME_OVER_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_sessions = max(1, max_sessions)
        self.idle_seconds = idle_seconds
        self.game_over_idle_seconds = game_over_idle_seconds
        self._clock = clock
        self._sessions: dict[str, PuzzleSession] = {}
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __getitem__(self, session_id: str) -> PuzzleSession:
        return self._sessions[session_id]

    def get(self, session_id: str) -> PuzzleSession | None:
        """Look up a session and mark it as used."""
        session = self._sessions.get(session_id)
        if session is not None:
            self._last_seen[session_id] = self._clock()
        return session

    def add(self, session_id: str, session: PuzzleSession) -> None:
        self.prune()
        while len(self._sessions) >= self.max_sessions:
            oldest = min(self._last_seen, key=self._last_seen.__getitem__)
            _log.info("Session registry full; dropping %s", oldest)
            self.remove(oldest)
        self._sessions[session_id] = session
        self._last_seen[session_id] = self._clock()

    def remove(self, session_id: str) -> bool:
        self._last_seen.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def prune(self) -> int:
        """Drop expired sessions; returns how many were dropped."""
        now = self._clock()
        expired = []
        for session_id, session in self._sessions.items():
            idle = now - self._last_seen[session_id]
            limit = self.game_over_idle_seconds if session.is_game_over() else self.idle_seconds
            if idle >= limit:
                expired.append(session_id)
        for session_id in expired:
            self.remove(session_id)
        if expired:
            _log.info("Expired %d idle session(s)", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._sessions.clear()
        self._last_seen.clear()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    manager: PuzzleManager | None = None,
    sessions: SessionRegistry | None = None,
) -> FastAPI:
    """
    Build the FastAPI app around a PuzzleManager.

    Args:
        manager: Manager to serve from. Defaults to one configured from
                 PUZZLE_* environment variables.
        sessions: Registry holding live sessions. Defaults to one with
                  the module-level size and idle limits.
    """
    manager = manager or PuzzleManager(PuzzleConfig.from_env())
    sessions = sessions if sessions is not None else SessionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not manager.initialized and not await manager.init():
            _log.error("Puzzle system failed to initialize; sessions unavailable")
        yield
        sessions.clear()
        await manager.aclose()

    app = FastAPI(title="Chess Puzzle Rush", version="1.0.0", lifespan=lifespan)
    app.state.manager = manager
    app.state.sessions = sessions

    def _session(session_id: str) -> PuzzleSession:
        session = sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
        return session

    # -----------------------------------------------------------------------
    # API routes
    # -----------------------------------------------------------------------

    @app.post("/api/sessions", response_model=SessionResponse)
    async def create_session() -> SessionResponse:
        if not manager.initialized:
            raise HTTPException(status_code=503, detail="Puzzle system not initialized")
        session_id = uuid.uuid4().hex
        session = manager.new_session()
        sessions.add(session_id, session)
        _log.info("Created session %s", session_id)
        return SessionResponse(
            session_id=session_id,
            remaining_time=session.remaining_time,
            state=session.state.value,
        )

    @app.post("/api/sessions/{session_id}/next", response_model=PuzzleResponse)
    async def next_puzzle(session_id: str) -> PuzzleResponse:
        """
        Serve the next puzzle for the session's current streak.

        Raises:
            HTTPException 409: The session is out of time.
            HTTPException 503: The chunk could not be loaded right now.
        """
        session = _session(session_id)
        if session.is_game_over():
            raise HTTPException(status_code=409, detail="Game over")
        view = await session.next_puzzle()
        if view is None:
            raise HTTPException(status_code=503, detail="Puzzle temporarily unavailable")
        return PuzzleResponse(**view.to_dict())

    @app.post("/api/sessions/{session_id}/move", response_model=MoveResponse)
    async def submit_move(session_id: str, request: MoveRequest) -> MoveResponse:
        session = _session(session_id)
        result = session.submit_move(request.move, request.move_index)
        return MoveResponse(**result.to_dict())

    @app.post("/api/sessions/{session_id}/tick", response_model=TickResponse)
    async def tick(session_id: str) -> TickResponse:
        session = _session(session_id)
        remaining = session.tick()
        return TickResponse(remaining_time=remaining, game_over=session.is_game_over())

    @app.get("/api/sessions/{session_id}/score", response_model=ScoreResponse)
    async def final_score(session_id: str) -> ScoreResponse:
        return ScoreResponse(**_session(session_id).get_final_score().to_dict())

    @app.post("/api/sessions/{session_id}/mode", response_model=SessionResponse)
    async def set_mode(session_id: str, request: ModeRequest) -> SessionResponse:
        session = _session(session_id)
        if not session.set_mode(request.tier):
            raise HTTPException(
                status_code=400,
                detail=f"Unknown tier {request.tier!r}; expected one of {sorted(TIER_FILE_NAMES)}",
            )
        return SessionResponse(
            session_id=session_id,
            remaining_time=session.remaining_time,
            state=session.state.value,
        )

    @app.post("/api/sessions/{session_id}/reset", response_model=SessionResponse)
    async def reset(session_id: str) -> SessionResponse:
        session = _session(session_id)
        session.reset()
        return SessionResponse(
            session_id=session_id,
            remaining_time=session.remaining_time,
            state=session.state.value,
        )

    @app.delete("/api/sessions/{session_id}", status_code=204)
    async def delete_session(session_id: str) -> None:
        if not sessions.remove(session_id):
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")

    return app


app = create_app()
