"""
PuzzleManager: wires the fetcher, decoder, and chunk cache together and
hands out sessions that share them.

init() must succeed before sessions are created. It brings up the
decompressor and reads the metadata manifest the batch tool publishes next
to the chunk files. A failure in either step makes init() return False;
it never raises.
"""

import logging
import math
import random
import time
from typing import Any, Callable

import httpx

from puzzles.cache import ChunkCache
from puzzles.config import PuzzleConfig
from puzzles.constants import CHUNK_SIZE, METADATA_FILE, TIER_FILE_NAMES
from puzzles.decoder import ChunkDecoder
from puzzles.errors import InitializationError, NetworkError
from puzzles.fetcher import RetryingFetcher
from puzzles.session import PuzzleSession

_log = logging.getLogger(__name__)


class PuzzleManager:
    """
    Shared puzzle infrastructure for any number of sessions.

    Attributes:
        config:      Runtime settings.
        fetcher:     Retrying HTTP fetcher.
        decoder:     Chunk decoder (one-time async initialization).
        cache:       Bounded chunk cache shared by all sessions.
        metadata:    Parsed metadata.json, or None before init().
        initialized: True once init() has succeeded.
    """

    def __init__(
        self,
        config: PuzzleConfig | None = None,
        client: httpx.AsyncClient | None = None,
        fetcher: RetryingFetcher | None = None,
    ) -> None:
        self.config = config or PuzzleConfig()
        self.fetcher = fetcher or RetryingFetcher(client)
        self.decoder = ChunkDecoder()
        self.cache = ChunkCache(
            self.fetcher,
            self.decoder,
            cdn_base=self.config.cdn_base,
            capacity=self.config.cache_capacity,
            retries=self.config.retries,
            timeout_ms=self.config.timeout_ms,
        )
        self.metadata: dict[str, Any] | None = None
        self.initialized = False

    async def __aenter__(self) -> "PuzzleManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def metadata_url(self) -> str:
        return f"{self.config.cdn_base}/{METADATA_FILE}"

    async def init(self) -> bool:
        """
        Bring up the decompressor and load the metadata manifest.

        Returns:
            True on success, False if either step failed (logged).
        """
        try:
            await self.decoder.ready()
        except InitializationError as exc:
            _log.error("Failed to initialize puzzle system: %s", exc)
            return False

        try:
            metadata = await self.fetcher.fetch_json(
                self.metadata_url,
                retries=self.config.retries,
                timeout_ms=self.config.timeout_ms,
            )
        except NetworkError as exc:
            _log.error("Failed to initialize puzzle system: %s", exc)
            return False

        if not isinstance(metadata, dict):
            _log.warning("metadata.json is not an object; ignoring chunk counts")
            metadata = {}

        self.metadata = metadata
        self.initialized = True
        _log.info("Puzzle system initialized with metadata: %s", metadata)
        return True

    def chunk_count(self, tier: str) -> int | None:
        """Number of chunk files for a tier per the manifest, if known."""
        if not self.metadata:
            return None
        counts = self.metadata.get("counts")
        file_name = TIER_FILE_NAMES.get(tier)
        if not isinstance(counts, dict) or file_name is None:
            return None
        count = counts.get(file_name)
        if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
            return None
        return math.ceil(count / CHUNK_SIZE)

    def new_session(
        self,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> PuzzleSession:
        """
        Create a session backed by the shared cache.

        Raises:
            RuntimeError: init() has not succeeded yet.
        """
        if not self.initialized:
            raise RuntimeError("PuzzleManager.init() must succeed before creating sessions")
        return PuzzleSession(
            self.cache,
            total_seconds=self.config.session_seconds,
            base_points=self.config.base_points,
            chunk_count=self.chunk_count,
            clock=clock,
            rng=rng,
        )

    async def aclose(self) -> None:
        await self.cache.prefetcher.cancel()
        await self.fetcher.aclose()
