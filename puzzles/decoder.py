"""
Chunk decoder: compressed bytes -> tuple of PuzzleRecord.

The zstd decompressor is brought up once, asynchronously, and every decode
awaits that same initialization task. Awaiting it again after it finished
is free, and a failed initialization keeps failing with the same
InitializationError instead of being retried per call.

Chunk files written by the batch tool are gzip; the decoder also accepts
zstd frames. The format is picked from the frame's magic bytes.
"""

import asyncio
import gzip
import logging
import zlib

import zstandard
from pydantic import TypeAdapter, ValidationError

from puzzles.constants import GZIP_MAGIC, ZSTD_MAGIC
from puzzles.errors import DecodeError, InitializationError
from puzzles.models import Chunk, PuzzleRecord

_log = logging.getLogger(__name__)

_CHUNK_ADAPTER: TypeAdapter[Chunk] = TypeAdapter(tuple[PuzzleRecord, ...])


class ChunkDecoder:
    def __init__(self) -> None:
        self._ready: asyncio.Task | None = None
        self._zstd: zstandard.ZstdDecompressor | None = None

    def ready(self) -> asyncio.Task:
        """Return the shared initialization task, starting it on first use."""
        if self._ready is None:
            self._ready = asyncio.ensure_future(self._initialize())
        return self._ready

    async def _initialize(self) -> None:
        try:
            self._zstd = await asyncio.to_thread(zstandard.ZstdDecompressor)
        except zstandard.ZstdError as exc:
            raise InitializationError(f"zstd decompressor unavailable: {exc}") from exc
        _log.debug("Chunk decoder initialized")

    async def decode(self, data: bytes) -> Chunk:
        """
        Decompress and parse one chunk.

        Raises:
            InitializationError: The decompressor never came up.
            DecodeError: Empty, corrupt, or unrecognised payload, or JSON
                         that is not an array of puzzle records.
        """
        await self.ready()
        payload = await asyncio.to_thread(self._decompress, data)
        try:
            return _CHUNK_ADAPTER.validate_json(payload)
        except ValidationError as exc:
            raise DecodeError(f"Malformed puzzle chunk: {exc.error_count()} error(s)") from exc

    def _decompress(self, data: bytes) -> bytes:
        if not data:
            raise DecodeError("Empty chunk payload")
        try:
            if data.startswith(GZIP_MAGIC):
                return gzip.decompress(data)
            if data.startswith(ZSTD_MAGIC):
                if self._zstd is None:
                    raise InitializationError("zstd decompressor not initialized")
                return self._zstd.decompressobj().decompress(data)
        except (OSError, EOFError, zlib.error, zstandard.ZstdError) as exc:
            raise DecodeError(f"Corrupt chunk payload: {exc}") from exc
        raise DecodeError("Unrecognised chunk compression format")
