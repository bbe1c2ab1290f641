"""Shared fixtures: an in-memory content store served through httpx.MockTransport."""

import gzip
import json

import httpx
import pytest
import zstandard

from puzzles.config import PuzzleConfig
from puzzles.fetcher import RetryingFetcher
from puzzles.manager import PuzzleManager

CDN = "https://cdn.test/puzzles"

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def record(
    fen: str = START_FEN,
    moves: str = "e2e4 e7e5",
    rating: str = "1500",
    themes: str = "mateIn1 middlegame",
) -> dict:
    return {"FEN": fen, "Moves": moves, "Rating": rating, "Themes": themes}


def gzip_chunk(records: list[dict]) -> bytes:
    return gzip.compress(json.dumps(records).encode("utf-8"))


def zstd_chunk(records: list[dict]) -> bytes:
    return zstandard.ZstdCompressor().compress(json.dumps(records).encode("utf-8"))


class FakeStore:
    """
    URL -> response table with a request log.

    Values are bytes (served with 200), an int status code, or a list of
    those consumed one per request (the last one repeats).
    """

    def __init__(self) -> None:
        self.routes: dict[str, object] = {}
        self.requests: list[str] = []

    def add(self, path: str, response: object) -> None:
        self.routes[f"{CDN}/{path}"] = response

    def count(self, path: str) -> int:
        return self.requests.count(f"{CDN}/{path}")

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        entry = self.routes.get(url, 404)
        if isinstance(entry, list):
            entry = entry.pop(0) if len(entry) > 1 else entry[0]
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, int):
            return httpx.Response(entry)
        return httpx.Response(200, content=entry)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def store() -> FakeStore:
    store = FakeStore()
    store.add("metadata.json", json.dumps({
        "counts": {"tutorial": 250, "coreLoop": 1000, "spice": 300, "boss": 40},
        "timestamp": "2024-01-01T00:00:00Z",
    }).encode())
    store.add("tutorial/tutorial-0.json.gz", gzip_chunk([record()]))
    return store


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fetcher(store: FakeStore, sleeps: list[float]) -> RetryingFetcher:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return RetryingFetcher(store.client(), sleep=fake_sleep)


@pytest.fixture
def config() -> PuzzleConfig:
    return PuzzleConfig(cdn_base=CDN)


@pytest.fixture
def manager(config: PuzzleConfig, fetcher: RetryingFetcher) -> PuzzleManager:
    return PuzzleManager(config, fetcher=fetcher)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
