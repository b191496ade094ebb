"""Deterministic cache identifiers for each Last.fm entry type.

Free-text names are URL-escaped so that a ':' inside an artist or track
name can never make two different parameter sets collide.
"""

from typing import Optional
from urllib.parse import quote


def _escape(value: str) -> str:
    return quote(value, safe="")


def _or(value, default) -> str:
    return str(value) if value not in (None, "") else str(default)


class CacheKeys:
    """Identifier builders, one per EntryType."""

    # User data

    @staticmethod
    def user_recent_tracks(
        username: str,
        limit: Optional[int] = None,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        page: Optional[int] = None,
    ) -> str:
        return ":".join(
            [_escape(username), _or(limit, 50), _or(from_ts, ""), _or(to_ts, ""), _or(page, 1)]
        )

    @staticmethod
    def user_top_artists(username: str, period: Optional[str] = None, limit: Optional[int] = None) -> str:
        return f"{_escape(username)}:{_or(period, 'overall')}:{_or(limit, 50)}"

    @staticmethod
    def user_top_albums(username: str, period: Optional[str] = None, limit: Optional[int] = None) -> str:
        return f"{_escape(username)}:{_or(period, 'overall')}:{_or(limit, 50)}"

    @staticmethod
    def user_loved_tracks(username: str, limit: Optional[int] = None) -> str:
        return f"{_escape(username)}:{_or(limit, 50)}"

    @staticmethod
    def user_info(username: str) -> str:
        return _escape(username)

    @staticmethod
    def user_listening_stats(username: str, period: Optional[str] = None) -> str:
        return f"{_escape(username)}:{_or(period, 'overall')}"

    @staticmethod
    def user_recommendations(username: str, limit: Optional[int] = None, genre: Optional[str] = None) -> str:
        return f"{_escape(username)}:{_or(limit, 20)}:{_escape(_or(genre, 'all'))}"

    # Static music data

    @staticmethod
    def track_info(artist: str, track: str, username: Optional[str] = None) -> str:
        return f"{_escape(artist)}:{_escape(track)}:{_escape(_or(username, 'global'))}"

    @staticmethod
    def artist_info(artist: str, username: Optional[str] = None) -> str:
        return f"{_escape(artist)}:{_escape(_or(username, 'global'))}"

    @staticmethod
    def album_info(artist: str, album: str, username: Optional[str] = None) -> str:
        return f"{_escape(artist)}:{_escape(album)}:{_escape(_or(username, 'global'))}"

    @staticmethod
    def similar_artists(artist: str, limit: Optional[int] = None) -> str:
        return f"{_escape(artist)}:{_or(limit, 30)}"

    @staticmethod
    def similar_tracks(artist: str, track: str, limit: Optional[int] = None) -> str:
        return f"{_escape(artist)}:{_escape(track)}:{_or(limit, 30)}"
