"""KV-backed response cache with TTL per entry type and request coalescing.

This module provides SmartCache for caching Last.fm API responses in a
key-value store. Features:
    - TTL per entry type, enforced both logically and by the KV provider
    - Versioned entries; entries from another cache format are discarded
    - At most one in-flight upstream fetch per key within a process
    - Lazy cleanup of expired and incompatible entries

Storage faults never reach the caller: a broken KV store degrades to
"no cache". Fetch errors always reach the caller and are never cached.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..kv import KVStore
from .models import CacheConfig, CacheEntry, CacheStats, EntryType, PendingRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[T]]


def _consume_result(task: asyncio.Future) -> None:
    # Callers may all be cancelled before the shared fetch settles
    if not task.cancelled():
        task.exception()


class SmartCache:
    """Typed get/set/invalidate over a KVStore with in-process dedup.

    One instance is meant to live for the whole process and be shared by
    every tool handler, since the pending-request map is per instance.

    Attributes:
        kv: Backing key-value store
        config: TTLs, cache version and pending sweep threshold
        clock: Callable returning the current time in epoch seconds
    """

    def __init__(
        self,
        kv: KVStore,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.kv = kv
        self.config = config or CacheConfig()
        self.clock = clock
        self._pending: Dict[str, PendingRequest] = {}

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    @staticmethod
    def cache_key(entry_type: EntryType, identifier: str) -> str:
        """Key under which an entry is persisted."""
        return f"cache:{EntryType(entry_type).value}:{identifier}"

    @staticmethod
    def dedupe_key(entry_type: EntryType, identifier: str) -> str:
        """Key of the in-process pending-request map. Never persisted."""
        return f"pending:{EntryType(entry_type).value}:{identifier}"

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def _discard(self, key: str, reason: str) -> None:
        logger.debug(f"Discarding {reason} cache entry {key}")
        try:
            await self.kv.delete(key)
        except Exception as e:
            logger.error(f"Cache delete error for {key}: {e}")

    async def _lookup(self, entry_type: EntryType, identifier: str) -> Optional[CacheEntry]:
        """Load a valid entry, or None. Never raises."""
        key = self.cache_key(entry_type, identifier)
        try:
            raw = await self.kv.get(key)
        except Exception as e:
            logger.error(f"Cache get error for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            entry = CacheEntry.from_json(raw)
        except Exception as e:
            logger.warning(f"Unreadable cache entry {key}: {e}")
            return None

        if entry.version != self.config.version:
            await self._discard(key, f"version {entry.version}")
            return None

        if entry.is_expired(self._now_ms()):
            await self._discard(key, "expired")
            return None

        return entry

    async def get(self, entry_type: EntryType, identifier: str) -> Optional[Any]:
        """Retrieve cached data if present, current-version and not expired.

        Args:
            entry_type: Kind of data
            identifier: Identifier built with CacheKeys

        Returns:
            Cached data, or None on miss or any storage fault
        """
        entry = await self._lookup(entry_type, identifier)
        return entry.data if entry is not None else None

    async def set(self, entry_type: EntryType, identifier: str, data: Any) -> None:
        """Store data with the entry type's TTL. Best-effort; never raises.

        Args:
            entry_type: Kind of data (selects the TTL)
            identifier: Identifier built with CacheKeys
            data: JSON-serializable payload
        """
        key = self.cache_key(entry_type, identifier)
        try:
            ttl = self.config.ttl_for(entry_type)
            now = self._now_ms()
            entry = CacheEntry(
                data=data,
                timestamp=now,
                expires_at=now + ttl * 1000,
                version=self.config.version,
            )
            # Provider-level expiry backs up the logical expiresAt check
            await self.kv.put(key, entry.to_json(), expiration_ttl=ttl)
        except Exception as e:
            logger.error(f"Cache set error for {key}: {e}")

    async def get_or_fetch(
        self,
        entry_type: EntryType,
        identifier: str,
        fetcher: Fetcher,
        force_refresh: bool = False,
        max_age: Optional[float] = None,
    ) -> Any:
        """Return cached data, or fetch it once and cache the result.

        Concurrent callers for the same key share a single fetch. A failing
        fetch writes nothing and its error propagates to every caller
        sharing it.

        Args:
            entry_type: Kind of data
            identifier: Identifier built with CacheKeys
            fetcher: Argument-less coroutine function performing one upstream call
            force_refresh: Skip the cache read and always fetch
            max_age: Optional freshness bound in seconds, stricter than the TTL

        Returns:
            Cached or freshly fetched data
        """
        if not force_refresh:
            entry = await self._lookup(entry_type, identifier)
            if entry is not None and (max_age is None or entry.age_seconds(self._now_ms()) <= max_age):
                logger.debug(f"Cache hit for {entry_type}:{identifier}")
                return entry.data

        # No await between this check and registration below
        dedupe_key = self.dedupe_key(entry_type, identifier)
        pending = self._pending.get(dedupe_key)
        if pending is not None:
            logger.debug(f"Deduplicating request for {entry_type}:{identifier}")
            return await asyncio.shield(pending.task)

        task = asyncio.ensure_future(self._fetch_and_cache(entry_type, identifier, fetcher, dedupe_key))
        task.add_done_callback(_consume_result)
        self._pending[dedupe_key] = PendingRequest(task=task, timestamp=self._now_ms())
        # Shielded so one caller's cancellation does not cancel the shared fetch
        return await asyncio.shield(task)

    async def _fetch_and_cache(
        self,
        entry_type: EntryType,
        identifier: str,
        fetcher: Fetcher,
        dedupe_key: str,
    ) -> Any:
        try:
            logger.debug(f"Fetching fresh data for {entry_type}:{identifier}")
            data = await fetcher()
            await self.set(entry_type, identifier, data)
            return data
        except Exception as e:
            logger.error(f"Failed to fetch {entry_type}:{identifier}: {e}")
            raise
        finally:
            current = self._pending.get(dedupe_key)
            if current is not None and current.task is asyncio.current_task():
                del self._pending[dedupe_key]

    async def invalidate(self, entry_type: EntryType, identifier_prefix: str = "") -> int:
        """Delete every entry of ``entry_type`` whose identifier starts with the prefix.

        Returns:
            Number of keys deleted (0 if listing fails; failed deletes are not counted)
        """
        prefix = self.cache_key(entry_type, identifier_prefix)
        try:
            listing = await self.kv.list(prefix=prefix)
        except Exception as e:
            logger.error(f"Cache invalidation error for {prefix}: {e}")
            return 0

        results = await asyncio.gather(
            *(self.kv.delete(key.name) for key in listing.keys), return_exceptions=True
        )
        deleted = 0
        for key, result in zip(listing.keys, results):
            if isinstance(result, Exception):
                logger.error(f"Cache delete error for {key.name}: {result}")
            else:
                deleted += 1

        if not listing.list_complete:
            logger.warning(f"Invalidation of {prefix} hit the listing limit; some entries remain")
        logger.info(f"Invalidated {deleted} cache entries matching {prefix}")
        return deleted

    async def get_stats(self) -> CacheStats:
        """Count persisted entries per type. Zeroed counts on storage fault."""
        try:
            listing = await self.kv.list(prefix="cache:")
        except Exception as e:
            logger.error(f"Cache stats error: {e}")
            return CacheStats(pending_requests=self.pending_count)

        entries_by_type: Dict[str, int] = {}
        for key in listing.keys:
            parts = key.name.split(":")
            if len(parts) >= 2:
                entries_by_type[parts[1]] = entries_by_type.get(parts[1], 0) + 1

        return CacheStats(
            total_entries=len(listing.keys),
            entries_by_type=entries_by_type,
            pending_requests=self.pending_count,
        )

    def cleanup_pending_requests(self) -> int:
        """Forget in-flight fetches older than ``config.pending_max_age``.

        The fetch itself is left running; later callers simply stop
        waiting on it and start a new one.

        Returns:
            Number of pending entries removed
        """
        cutoff = self._now_ms() - self.config.pending_max_age * 1000
        stale = [key for key, pending in self._pending.items() if pending.timestamp < cutoff]
        for key in stale:
            logger.warning(f"Cleaning up stale pending request: {key}")
            del self._pending[key]
        return len(stale)


async def run_pending_cleanup(cache, interval: float, stop_event: asyncio.Event) -> None:
    """Sweep stale pending requests every ``interval`` seconds until stopped.

    Meant to be scheduled by the host as a background task.
    """
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            cache.cleanup_pending_requests()
