"""Test configuration and shared fixtures for the Last.fm MCP test suite.

Time never advances on its own in these tests: components take a clock
callable and tests move a FakeClock explicitly.
"""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from lastfm_mcp.cache import SmartCache
from lastfm_mcp.exceptions import KVStoreError
from lastfm_mcp.kv import KVListResult, KVStore, MemoryKVStore
from lastfm_mcp.ratelimit import RateLimiter

# 10 seconds into a minute window, 790 seconds into an hour window
START_TIME = 1_699_999_990.0


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingKVStore(KVStore):
    """KV store whose every operation fails."""

    def __init__(self):
        self.calls = 0

    def _fail(self):
        self.calls += 1
        raise KVStoreError("KV namespace unavailable")

    async def get(self, key: str) -> Optional[str]:
        self._fail()

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        self._fail()

    async def delete(self, key: str) -> None:
        self._fail()

    async def list(self, prefix: str = "", limit: int = 1000) -> KVListResult:
        self._fail()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return MemoryKVStore(clock=clock)


@pytest.fixture
def failing_kv():
    return FailingKVStore()


@pytest.fixture
def cache(kv, clock):
    return SmartCache(kv, clock=clock)


@pytest.fixture
def rate_limiter(kv, clock):
    return RateLimiter(kv, clock=clock)


@pytest.fixture
def mock_lastfm_client():
    """Create a mocked LastfmClient for testing.

    Returns:
        MagicMock: Mocked LastfmClient with async methods
    """
    client = MagicMock()

    client.get_recent_tracks = AsyncMock()
    client.get_top_artists = AsyncMock()
    client.get_top_albums = AsyncMock()
    client.get_loved_tracks = AsyncMock()
    client.get_track_info = AsyncMock()
    client.get_artist_info = AsyncMock()
    client.get_album_info = AsyncMock()
    client.get_user_info = AsyncMock()
    client.get_similar_artists = AsyncMock()
    client.get_similar_tracks = AsyncMock()

    return client


@pytest.fixture
def sample_top_artists():
    """Top artists payload as returned by user.getTopArtists."""
    return {
        "topartists": {
            "artist": [
                {"name": "Radiohead", "playcount": "1203", "url": "https://www.last.fm/music/Radiohead"},
                {"name": "Portishead", "playcount": "877", "url": "https://www.last.fm/music/Portishead"},
                {"name": "Massive Attack", "playcount": "640", "url": "https://www.last.fm/music/Massive+Attack"},
                {"name": "Björk", "playcount": "512", "url": "https://www.last.fm/music/Bj%C3%B6rk"},
            ],
            "@attr": {"user": "rj", "page": "1", "total": "4"},
        }
    }


@pytest.fixture
def sample_user_info():
    """Profile payload as returned by user.getInfo."""
    return {
        "user": {
            "name": "rj",
            "playcount": "150000",
            "registered": {"unixtime": "1037793040", "#text": 1037793040},
        }
    }
