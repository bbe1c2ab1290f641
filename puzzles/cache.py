"""
Chunk cache and background prefetcher.

ChunkCache is a bounded key -> chunk map (key = "{tier}-{chunk_index}") kept
in memory only. Eviction is FIFO by insertion: after an insert pushes the
count over capacity, the oldest inserted key is dropped no matter how
recently it was read. Insertion order is tracked explicitly in _order
rather than relying on dict ordering.

Concurrency model:
    Everything runs on one asyncio event loop, so the map and the order list
    are only mutated between awaits and need no lock. The fill path is not
    single-flight: a get() and a prefetch for the same missing key can both
    fetch and decode it. The last insert wins and the key keeps its original
    position in the eviction order.

A successful miss in get() schedules a prefetch of the following chunk.
The prefetch runs as its own task; the caller never awaits it and its
failures are logged inside the task.
"""

import asyncio
import logging

from puzzles.constants import (
    CACHE_CAPACITY,
    CHUNK_SUFFIX,
    DEFAULT_CDN_BASE,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT_MS,
    TIER_FILE_NAMES,
)
from puzzles.decoder import ChunkDecoder
from puzzles.errors import PuzzleError
from puzzles.fetcher import RetryingFetcher
from puzzles.models import Chunk, ChunkRef

_log = logging.getLogger(__name__)


def chunk_url(cdn_base: str, tier: str, chunk_index: int) -> str:
    """
    Build the content-store URL of a chunk file.

    Raises:
        PuzzleError: tier has no file-name mapping.
    """
    try:
        file_name = TIER_FILE_NAMES[tier]
    except KeyError:
        raise PuzzleError(f"Unknown tier: {tier!r}") from None
    return f"{cdn_base}/{tier}/{file_name}-{chunk_index}{CHUNK_SUFFIX}"


class ChunkCache:
    """
    Bounded, insertion-ordered cache of decoded chunks.

    Attributes:
        capacity:   Maximum number of resident chunks.
        prefetcher: Background warmer bound to this cache.
    """

    def __init__(
        self,
        fetcher: RetryingFetcher,
        decoder: ChunkDecoder,
        cdn_base: str = DEFAULT_CDN_BASE,
        capacity: int = CACHE_CAPACITY,
        retries: int = DEFAULT_RETRIES,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        self.fetcher = fetcher
        self.decoder = decoder
        self.cdn_base = cdn_base.rstrip("/")
        self.capacity = capacity
        self.retries = retries
        self.timeout_ms = timeout_ms
        self._entries: dict[str, Chunk] = {}
        self._order: list[str] = []
        self.prefetcher = Prefetcher(self)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        """Resident keys, oldest insertion first."""
        return list(self._order)

    def peek(self, key: str) -> Chunk | None:
        return self._entries.get(key)

    def put(self, key: str, chunk: Chunk) -> None:
        """Insert a chunk, then evict the oldest entries beyond capacity."""
        if key not in self._entries:
            self._order.append(key)
        self._entries[key] = chunk
        while len(self._order) > self.capacity:
            evicted = self._order.pop(0)
            del self._entries[evicted]
            _log.debug("Evicted chunk %s", evicted)

    def clear(self) -> None:
        self._entries.clear()
        self._order.clear()

    async def fill(self, tier: str, chunk_index: int) -> Chunk:
        """
        Fetch, decode, and insert one chunk.

        This is the miss path shared by get() and the prefetcher. It does
        not schedule any prefetch itself.

        Raises:
            PuzzleError: Unknown tier, NetworkError, DecodeError, or
                         InitializationError from the layers below.
        """
        ref = ChunkRef(tier, chunk_index)
        url = chunk_url(self.cdn_base, tier, chunk_index)
        data = await self.fetcher.fetch_bytes(
            url, retries=self.retries, timeout_ms=self.timeout_ms
        )
        chunk = await self.decoder.decode(data)
        self.put(ref.cache_key, chunk)
        _log.info("Loaded chunk %s (%d puzzles)", ref.cache_key, len(chunk))
        return chunk

    async def get(self, tier: str, chunk_index: int) -> Chunk | None:
        """
        Return the chunk for (tier, chunk_index), loading it on a miss.

        Returns:
            The chunk, or None when it could not be fetched or decoded.
            None means puzzle serving is temporarily degraded; nothing is
            cached for a failed load.
        """
        key = ChunkRef(tier, chunk_index).cache_key
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        try:
            chunk = await self.fill(tier, chunk_index)
        except PuzzleError as exc:
            _log.error("Failed to load puzzle chunk %s: %s", key, exc)
            return None

        self.prefetcher.prefetch(tier, chunk_index + 1)
        return chunk


class Prefetcher:
    """
    Fire-and-forget warmer for a ChunkCache.

    A key is recorded as attempted as soon as its prefetch is scheduled and
    is never prefetched again, whether the attempt succeeded or failed.
    Task handles are kept until they finish so they are not garbage
    collected mid-flight.
    """

    def __init__(self, cache: ChunkCache) -> None:
        self.cache = cache
        self.attempted: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    def prefetch(self, tier: str, chunk_index: int) -> asyncio.Task | None:
        """
        Schedule a background load of (tier, chunk_index).

        Returns:
            The spawned task, or None if this key was already attempted.
            Callers are not expected to await it.
        """
        key = ChunkRef(tier, chunk_index).cache_key
        if key in self.attempted:
            return None
        self.attempted.add(key)

        task = asyncio.create_task(self._run(tier, chunk_index, key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, tier: str, chunk_index: int, key: str) -> None:
        if key in self.cache:
            return
        try:
            await self.cache.fill(tier, chunk_index)
        except PuzzleError as exc:
            _log.warning("Prefetch of chunk %s failed: %s", key, exc)
        except Exception:
            _log.exception("Unexpected error prefetching chunk %s", key)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight prefetch to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def cancel(self) -> None:
        """Cancel in-flight prefetches (used on shutdown)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
