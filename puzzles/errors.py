"""
Error taxonomy for the puzzle core.

Exceptions are raised inside the fetch and decode layers and caught at the
public API boundary (ChunkCache.get, PuzzleManager.init), which turns them
into None/False returns so a front end can render a degraded state.
"""


class PuzzleError(Exception):
    """Base class for every error raised by the puzzle core."""


class NetworkError(PuzzleError):
    """
    Timeout, transport failure, or non-2xx response from the content store.

    Attributes:
        url:    The URL that was being fetched.
        status: HTTP status code, or None when no response was received.
    """

    def __init__(self, message: str, url: str, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class DecodeError(PuzzleError):
    """Corrupt or unrecognised compressed payload, or malformed puzzle JSON."""


class InitializationError(PuzzleError):
    """The decompression capability could not be brought up."""
