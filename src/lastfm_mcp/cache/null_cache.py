"""Cache stand-in for running without a key-value store."""

from typing import Any, Optional

from .models import CacheStats, EntryType
from .smart_cache import Fetcher


class NullCache:
    """Same interface as SmartCache, but nothing is stored or coalesced.

    Every get_or_fetch calls the fetcher directly, so callers behave
    exactly as with an always-cold cache.
    """

    async def get(self, entry_type: EntryType, identifier: str) -> Optional[Any]:
        return None

    async def set(self, entry_type: EntryType, identifier: str, data: Any) -> None:
        return None

    async def get_or_fetch(
        self,
        entry_type: EntryType,
        identifier: str,
        fetcher: Fetcher,
        force_refresh: bool = False,
        max_age: Optional[float] = None,
    ) -> Any:
        return await fetcher()

    async def invalidate(self, entry_type: EntryType, identifier_prefix: str = "") -> int:
        return 0

    async def get_stats(self) -> CacheStats:
        return CacheStats()

    def cleanup_pending_requests(self) -> int:
        return 0
