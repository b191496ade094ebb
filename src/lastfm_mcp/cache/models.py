"""Cache data model: entry types, TTL configuration and persisted entries."""

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

CACHE_VERSION = "1.0.0"

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR


class EntryType(str, Enum):
    """Kinds of cached Last.fm data. The value is the key namespace."""

    # User data (changes frequently)
    USER_RECENT_TRACKS = "userRecentTracks"
    USER_TOP_ARTISTS = "userTopArtists"
    USER_TOP_ALBUMS = "userTopAlbums"
    USER_LOVED_TRACKS = "userLovedTracks"
    USER_INFO = "userInfo"
    USER_LISTENING_STATS = "userListeningStats"
    USER_RECOMMENDATIONS = "userRecommendations"

    # Static music data (changes rarely)
    TRACK_INFO = "trackInfo"
    ARTIST_INFO = "artistInfo"
    ALBUM_INFO = "albumInfo"
    SIMILAR_ARTISTS = "similarArtists"
    SIMILAR_TRACKS = "similarTracks"

    def __str__(self) -> str:
        return self.value


DEFAULT_TTLS: Dict[EntryType, int] = {
    EntryType.USER_RECENT_TRACKS: 5 * MINUTE,
    EntryType.USER_TOP_ARTISTS: HOUR,
    EntryType.USER_TOP_ALBUMS: HOUR,
    EntryType.USER_LOVED_TRACKS: 30 * MINUTE,
    EntryType.USER_INFO: 6 * HOUR,
    EntryType.USER_LISTENING_STATS: HOUR,
    EntryType.USER_RECOMMENDATIONS: DAY,
    EntryType.TRACK_INFO: DAY,
    EntryType.ARTIST_INFO: DAY,
    EntryType.ALBUM_INFO: DAY,
    EntryType.SIMILAR_ARTISTS: 7 * DAY,
    EntryType.SIMILAR_TRACKS: 7 * DAY,
}


@dataclass
class CacheConfig:
    """Cache tuning.

    Attributes:
        ttls: TTL in seconds per entry type; missing types use DEFAULT_TTLS
        version: Cache format version; entries written under another version are discarded
        pending_max_age: Seconds after which an unsettled in-flight fetch is swept
    """

    ttls: Dict[EntryType, int] = field(default_factory=dict)
    version: str = CACHE_VERSION
    pending_max_age: int = 5 * MINUTE

    def __post_init__(self):
        """Merge overrides over the defaults and validate them."""
        merged = dict(DEFAULT_TTLS)
        merged.update({EntryType(k): int(v) for k, v in self.ttls.items()})
        for entry_type, ttl in merged.items():
            if ttl <= 0:
                raise ValueError(f"TTL for {entry_type} must be positive, got {ttl}")
        self.ttls = merged
        if self.pending_max_age <= 0:
            raise ValueError("pending_max_age must be positive")

    def ttl_for(self, entry_type: EntryType) -> int:
        """TTL in seconds for ``entry_type``."""
        return self.ttls[EntryType(entry_type)]


@dataclass
class CacheEntry:
    """A cached payload as persisted in the KV store.

    Attributes:
        data: Opaque JSON-serializable payload
        timestamp: Write time, epoch milliseconds
        expires_at: Expiry, epoch milliseconds (always > timestamp)
        version: Cache format version at write time
    """

    data: Any
    timestamp: int
    expires_at: int
    version: str

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at

    def age_seconds(self, now_ms: int) -> float:
        return (now_ms - self.timestamp) / 1000

    def to_json(self) -> str:
        return json.dumps(
            {
                "data": self.data,
                "timestamp": self.timestamp,
                "expiresAt": self.expires_at,
                "version": self.version,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        """Parse a persisted entry.

        Raises:
            ValueError: If ``raw`` is not valid JSON or lacks a required field
        """
        try:
            payload = json.loads(raw)
        except RecursionError as e:
            raise ValueError("cache entry is nested too deeply") from e
        if not isinstance(payload, dict):
            raise ValueError("cache entry is not a JSON object")
        try:
            return cls(
                data=payload["data"],
                timestamp=int(payload["timestamp"]),
                expires_at=int(payload["expiresAt"]),
                version=str(payload["version"]),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            # Non-finite numbers such as Infinity or 1e400 land here too
            raise ValueError(f"malformed cache entry: {e}") from e


@dataclass
class PendingRequest:
    """An in-flight fetch shared by every concurrent caller for one key.

    Attributes:
        task: The running fetch-and-store task
        timestamp: Start time, epoch milliseconds
    """

    task: "asyncio.Task[Any]"
    timestamp: int


@dataclass
class CacheStats:
    """Best-effort cache introspection."""

    total_entries: int = 0
    entries_by_type: Dict[str, int] = field(default_factory=dict)
    pending_requests: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "entries_by_type": dict(self.entries_by_type),
            "pending_requests": self.pending_requests,
        }


def parse_entry_type(value: Optional[str]) -> Optional[EntryType]:
    """Map a key namespace back to its EntryType, or None if unknown."""
    try:
        return EntryType(value)
    except ValueError:
        return None
