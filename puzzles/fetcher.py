"""
Retrying fetcher: one HTTP GET with a shared timeout and exponential backoff.

Everything that talks to the content store goes through RetryingFetcher.
A single deadline covers the whole call: it is set when fetch() starts and
each attempt only gets whatever time is left. Once the deadline passes the
in-flight request is cancelled and no further attempts are made.

Between failed attempts the fetcher sleeps BACKOFF_BASE_MS * 2**attempt
(1s, 2s, 4s, ...). A backoff that would run past the deadline is not
slept; the fetcher stops and raises the last real failure instead. The
sleep function is injectable so tests do not wait.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from puzzles.constants import BACKOFF_BASE_MS, DEFAULT_RETRIES, DEFAULT_TIMEOUT_MS
from puzzles.errors import NetworkError

_log = logging.getLogger(__name__)


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the given (0-based) failed attempt."""
    return BACKOFF_BASE_MS * (2 ** attempt) / 1000


class RetryingFetcher:
    """
    Thin retry/timeout policy around an httpx.AsyncClient.

    Attributes:
        client: The HTTP client used for every request. When not supplied,
                the fetcher creates one and closes it in aclose().
        sleep:  Coroutine used for backoff waits (asyncio.sleep by default).
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._owns_client = client is None
        self.client: httpx.AsyncClient = client or httpx.AsyncClient()
        self.sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def fetch(
        self,
        url: str,
        retries: int = DEFAULT_RETRIES,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> httpx.Response:
        """
        GET url, retrying on transport errors and non-2xx responses.

        Args:
            url:        Absolute URL to fetch.
            retries:    Total number of attempts (at least one is made).
            timeout_ms: Shared budget for all attempts, in milliseconds.

        Returns:
            The successful httpx.Response; the caller reads bytes or JSON.

        Raises:
            NetworkError: The last failure once attempts or time run out.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        attempts = max(1, retries)
        last_error = NetworkError(f"Timed out fetching {url}", url)

        for attempt in range(attempts):
            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            try:
                response = await asyncio.wait_for(self.client.get(url), timeout=remaining)
            except asyncio.TimeoutError:
                # The deadline is shared; once it fires the request is aborted for good.
                last_error = NetworkError(
                    f"Timed out after {timeout_ms}ms fetching {url}", url
                )
                break
            except httpx.HTTPError as exc:
                last_error = NetworkError(f"Transport error fetching {url}: {exc}", url)
            else:
                if response.is_success:
                    return response
                last_error = NetworkError(
                    f"HTTP {response.status_code} fetching {url}",
                    url,
                    status=response.status_code,
                )

            if attempt < attempts - 1:
                delay = backoff_delay(attempt)
                if delay >= deadline - loop.time():
                    # Backing off would cross the deadline; give up with the real error.
                    break
                _log.warning(
                    "Fetch attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt + 1,
                    attempts,
                    last_error,
                    delay,
                )
                await self.sleep(delay)

        raise last_error

    async def fetch_bytes(self, url: str, retries: int = DEFAULT_RETRIES,
                          timeout_ms: int = DEFAULT_TIMEOUT_MS) -> bytes:
        response = await self.fetch(url, retries=retries, timeout_ms=timeout_ms)
        return response.content

    async def fetch_json(self, url: str, retries: int = DEFAULT_RETRIES,
                         timeout_ms: int = DEFAULT_TIMEOUT_MS) -> Any:
        response = await self.fetch(url, retries=retries, timeout_ms=timeout_ms)
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError(f"Invalid JSON from {url}: {exc}", url,
                               status=response.status_code) from exc
