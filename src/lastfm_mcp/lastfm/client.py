"""Async HTTP client for the Last.fm web service (API 2.0)."""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from .. import __version__
from ..exceptions import LastfmAPIError
from ..retry import RetryOptions, Sleep, fetch_with_retry

logger = logging.getLogger(__name__)

LASTFM_API_URL = "https://ws.audioscrobbler.com/2.0/"

# Last.fm asks for no more than ~5 requests per second
REQUEST_SPACING = 0.25

USER_AGENT = f"lastfm-mcp/{__version__}"

PERIODS = ("7day", "1month", "3month", "6month", "12month", "overall")

LASTFM_RETRY_OPTIONS = RetryOptions(
    max_retries=3,
    initial_delay=1.0,
    max_delay=15.0,
    backoff_multiplier=2.0,
    jitter_factor=0.1,
)


def _check_period(period: str) -> str:
    if period not in PERIODS:
        raise ValueError(f"Invalid period {period!r}; expected one of {', '.join(PERIODS)}")
    return period


class LastfmClient:
    """Read-only Last.fm API client.

    Every call goes through fetch_with_retry and a client-side throttle
    that keeps consecutive requests at least REQUEST_SPACING apart.

    Example:
        >>> async with LastfmClient(api_key="...") as client:
        ...     tracks = await client.get_recent_tracks("rj", limit=10)
    """

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        retry_options: Optional[RetryOptions] = None,
        base_url: str = LASTFM_API_URL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize Last.fm client.

        Args:
            api_key: Last.fm API key
            client: Optional shared httpx.AsyncClient (created and owned if omitted)
            retry_options: Retry schedule (defaults to LASTFM_RETRY_OPTIONS)
            base_url: API endpoint
            clock: Monotonic clock used by the throttle
            sleep: Awaitable sleep used by the throttle and retries

        Raises:
            ValueError: If api_key is empty
        """
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.base_url = base_url
        self.retry_options = retry_options or LASTFM_RETRY_OPTIONS
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=5.0),
            follow_redirects=True,
        )
        self._clock = clock
        self._sleep = sleep
        self._throttle_lock = asyncio.Lock()
        self._last_request: Optional[float] = None

    async def _throttle(self) -> None:
        """Wait until REQUEST_SPACING has passed since the previous request."""
        async with self._throttle_lock:
            if self._last_request is not None:
                wait = REQUEST_SPACING - (self._clock() - self._last_request)
                if wait > 0:
                    logger.debug(f"Throttling Last.fm request for {wait:.3f}s")
                    await self._sleep(wait)
            self._last_request = self._clock()

    async def _request(self, method: str, **params: Any) -> Dict[str, Any]:
        """Call one API method and return its decoded JSON body.

        Raises:
            LastfmAPIError: If Last.fm answers with an error payload
            UpstreamResponseError: If the HTTP status is a failure
        """
        query = {"method": method, "api_key": self.api_key, "format": "json"}
        query.update({k: str(v) for k, v in params.items() if v is not None})

        await self._throttle()
        logger.debug(f"Last.fm request: {method}")
        response = await fetch_with_retry(
            self.base_url,
            client=self.client,
            options=self.retry_options,
            sleep=self._sleep,
            params=query,
            headers={"User-Agent": USER_AGENT},
        )

        data = response.json()
        if isinstance(data, dict) and "error" in data:
            raise LastfmAPIError(int(data["error"]), str(data.get("message", "")))
        return data

    async def get_recent_tracks(
        self,
        username: str,
        limit: int = 50,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        page: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "user.getRecentTracks", user=username, limit=limit, **{"from": from_ts, "to": to_ts, "page": page}
        )

    async def get_top_artists(self, username: str, period: str = "overall", limit: int = 50) -> Dict[str, Any]:
        return await self._request("user.getTopArtists", user=username, period=_check_period(period), limit=limit)

    async def get_top_albums(self, username: str, period: str = "overall", limit: int = 50) -> Dict[str, Any]:
        return await self._request("user.getTopAlbums", user=username, period=_check_period(period), limit=limit)

    async def get_loved_tracks(self, username: str, limit: int = 50) -> Dict[str, Any]:
        return await self._request("user.getLovedTracks", user=username, limit=limit)

    async def get_track_info(self, artist: str, track: str, username: Optional[str] = None) -> Dict[str, Any]:
        return await self._request("track.getInfo", artist=artist, track=track, username=username)

    async def get_artist_info(self, artist: str, username: Optional[str] = None) -> Dict[str, Any]:
        return await self._request("artist.getInfo", artist=artist, username=username)

    async def get_album_info(self, artist: str, album: str, username: Optional[str] = None) -> Dict[str, Any]:
        return await self._request("album.getInfo", artist=artist, album=album, username=username)

    async def get_user_info(self, username: str) -> Dict[str, Any]:
        return await self._request("user.getInfo", user=username)

    async def get_similar_artists(self, artist: str, limit: int = 30) -> Dict[str, Any]:
        return await self._request("artist.getSimilar", artist=artist, limit=limit)

    async def get_similar_tracks(self, artist: str, track: str, limit: int = 30) -> Dict[str, Any]:
        return await self._request("track.getSimilar", artist=artist, track=track, limit=limit)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "LastfmClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()
