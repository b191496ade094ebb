"""Cached wrapper for LastfmClient.

Routes every read through the response cache so that overlapping tool
calls (e.g. top artists and recommendations for the same user) reach
Last.fm once.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from ..cache import CacheKeys, EntryType, ResponseCache
from .client import LastfmClient

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def _as_list(value: Any) -> List[Dict[str, Any]]:
    """Last.fm returns a bare object instead of a one-element list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class CachedLastfmClient:
    """LastfmClient with per-entry-type caching.

    Attributes:
        client: Underlying LastfmClient
        cache: SmartCache, or NullCache when no KV store is configured
    """

    def __init__(self, client: LastfmClient, cache: ResponseCache):
        self.client = client
        self.cache = cache

    async def get_recent_tracks(
        self,
        username: str,
        limit: int = 50,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        page: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Recent scrobbles (short TTL, the data changes constantly)."""
        return await self.cache.get_or_fetch(
            EntryType.USER_RECENT_TRACKS,
            CacheKeys.user_recent_tracks(username, limit, from_ts, to_ts, page),
            lambda: self.client.get_recent_tracks(username, limit, from_ts, to_ts, page),
        )

    async def get_top_artists(self, username: str, period: str = "overall", limit: int = 50) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.USER_TOP_ARTISTS,
            CacheKeys.user_top_artists(username, period, limit),
            lambda: self.client.get_top_artists(username, period, limit),
        )

    async def get_top_albums(self, username: str, period: str = "overall", limit: int = 50) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.USER_TOP_ALBUMS,
            CacheKeys.user_top_albums(username, period, limit),
            lambda: self.client.get_top_albums(username, period, limit),
        )

    async def get_loved_tracks(self, username: str, limit: int = 50) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.USER_LOVED_TRACKS,
            CacheKeys.user_loved_tracks(username, limit),
            lambda: self.client.get_loved_tracks(username, limit),
        )

    async def get_track_info(self, artist: str, track: str, username: Optional[str] = None) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.TRACK_INFO,
            CacheKeys.track_info(artist, track, username),
            lambda: self.client.get_track_info(artist, track, username),
        )

    async def get_artist_info(self, artist: str, username: Optional[str] = None) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.ARTIST_INFO,
            CacheKeys.artist_info(artist, username),
            lambda: self.client.get_artist_info(artist, username),
        )

    async def get_album_info(self, artist: str, album: str, username: Optional[str] = None) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.ALBUM_INFO,
            CacheKeys.album_info(artist, album, username),
            lambda: self.client.get_album_info(artist, album, username),
        )

    async def get_user_info(self, username: str) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.USER_INFO,
            CacheKeys.user_info(username),
            lambda: self.client.get_user_info(username),
        )

    async def get_similar_artists(self, artist: str, limit: int = 30) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.SIMILAR_ARTISTS,
            CacheKeys.similar_artists(artist, limit),
            lambda: self.client.get_similar_artists(artist, limit),
        )

    async def get_similar_tracks(self, artist: str, track: str, limit: int = 30) -> Dict[str, Any]:
        return await self.cache.get_or_fetch(
            EntryType.SIMILAR_TRACKS,
            CacheKeys.similar_tracks(artist, track, limit),
            lambda: self.client.get_similar_tracks(artist, track, limit),
        )

    async def get_listening_stats(self, username: str, period: str = "overall") -> Dict[str, Any]:
        """Summary statistics derived from profile, top artists and top albums.

        Returns:
            dict: total_scrobbles, average_tracks_per_day, top_artists_count,
                top_albums_count
        """

        async def build() -> Dict[str, Any]:
            user_info = await self.get_user_info(username)
            top_artists = await self.get_top_artists(username, period, 50)
            top_albums = await self.get_top_albums(username, period, 50)

            user = user_info.get("user", {})
            try:
                total_scrobbles = int(user.get("playcount", 0))
            except (TypeError, ValueError):
                total_scrobbles = 0
            try:
                registered = int(user.get("registered", {}).get("unixtime", 0))
            except (AttributeError, TypeError, ValueError):
                registered = 0

            days = max(1, int((time.time() - registered) // SECONDS_PER_DAY)) if registered else 1
            artists = _as_list(top_artists.get("topartists", {}).get("artist"))
            albums = _as_list(top_albums.get("topalbums", {}).get("album"))

            return {
                "total_scrobbles": total_scrobbles,
                "average_tracks_per_day": round(total_scrobbles / days),
                "top_artists_count": len(artists),
                "top_albums_count": len(albums),
            }

        return await self.cache.get_or_fetch(
            EntryType.USER_LISTENING_STATS,
            CacheKeys.user_listening_stats(username, period),
            build,
        )

    async def get_music_recommendations(
        self, username: str, limit: int = 20, genre: Optional[str] = None
    ) -> Dict[str, Any]:
        """Artists similar to the user's three most played artists.

        A seed artist whose similar-artists lookup fails is skipped.
        """

        async def build() -> Dict[str, Any]:
            top_artists = await self.get_top_artists(username, "overall", 10)
            seeds = _as_list(top_artists.get("topartists", {}).get("artist"))[:3]
            known = {seed.get("name", "").lower() for seed in seeds}

            recommended: List[Dict[str, Any]] = []
            for seed in seeds:
                seed_name = seed.get("name", "")
                try:
                    similar = await self.get_similar_artists(seed_name, 5)
                except Exception as e:
                    logger.warning(f"Could not get similar artists for {seed_name}: {e}")
                    continue

                for artist in _as_list(similar.get("similarartists", {}).get("artist")):
                    name = artist.get("name", "")
                    if len(recommended) >= limit or name.lower() in known:
                        continue
                    known.add(name.lower())
                    recommended.append(
                        {
                            "name": name,
                            "reason": f"Similar to {seed_name}",
                            "similarity": artist.get("match"),
                            "url": artist.get("url"),
                        }
                    )

            return {"recommended_artists": recommended[:limit], "genre": genre or "all"}

        return await self.cache.get_or_fetch(
            EntryType.USER_RECOMMENDATIONS,
            CacheKeys.user_recommendations(username, limit, genre),
            build,
        )
