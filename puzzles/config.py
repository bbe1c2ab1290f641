"""
Runtime configuration for the puzzle core.

Defaults come from puzzles.constants; every field can be overridden through
an environment variable so the same build can point at a local directory
server during development and at the CDN in production.
"""

import os
from dataclasses import dataclass

from puzzles.constants import (
    BASE_POINTS,
    CACHE_CAPACITY,
    DEFAULT_CDN_BASE,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT_MS,
    SESSION_SECONDS,
)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class PuzzleConfig:
    """
    Settings shared by the fetcher, the chunk cache, and every session.

    Attributes:
        cdn_base:        Base URL of the content store (no trailing slash).
        cache_capacity:  Maximum number of decoded chunks kept in memory.
        retries:         Total fetch attempts per request.
        timeout_ms:      Shared timeout for one fetch, across all attempts.
        session_seconds: Length of a timed session.
        base_points:     Points awarded for a solve before multipliers.
    """

    cdn_base: str = DEFAULT_CDN_BASE
    cache_capacity: int = CACHE_CAPACITY
    retries: int = DEFAULT_RETRIES
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    session_seconds: float = SESSION_SECONDS
    base_points: int = BASE_POINTS

    def __post_init__(self) -> None:
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "cdn_base", self.cdn_base.rstrip("/"))
        if self.cache_capacity < 1:
            raise ValueError("cache_capacity must be at least 1")

    @classmethod
    def from_env(cls) -> "PuzzleConfig":
        """Build a config from PUZZLE_* environment variables."""
        return cls(
            cdn_base=os.environ.get("PUZZLE_CDN_BASE", DEFAULT_CDN_BASE),
            cache_capacity=_env_int("PUZZLE_CACHE_CAPACITY", CACHE_CAPACITY),
            retries=_env_int("PUZZLE_FETCH_RETRIES", DEFAULT_RETRIES),
            timeout_ms=_env_int("PUZZLE_FETCH_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            session_seconds=float(
                _env_int("PUZZLE_SESSION_SECONDS", int(SESSION_SECONDS))
            ),
        )
