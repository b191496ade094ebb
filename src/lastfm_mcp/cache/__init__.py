"""Response cache for Last.fm data."""

import logging
from typing import Optional, Union

from ..kv import KVStore
from .keys import CacheKeys
from .models import (
    CACHE_VERSION,
    DEFAULT_TTLS,
    CacheConfig,
    CacheEntry,
    CacheStats,
    EntryType,
    PendingRequest,
)
from .null_cache import NullCache
from .smart_cache import SmartCache, run_pending_cleanup

logger = logging.getLogger(__name__)

ResponseCache = Union[SmartCache, NullCache]


def create_lastfm_cache(kv: Optional[KVStore], config: Optional[CacheConfig] = None) -> ResponseCache:
    """Build the cache for the given store, or a NullCache without one."""
    if kv is None:
        logger.info("No KV storage available, caching disabled")
        return NullCache()
    return SmartCache(kv, config)


__all__ = [
    "CACHE_VERSION",
    "DEFAULT_TTLS",
    "CacheConfig",
    "CacheEntry",
    "CacheKeys",
    "CacheStats",
    "EntryType",
    "NullCache",
    "PendingRequest",
    "ResponseCache",
    "SmartCache",
    "create_lastfm_cache",
    "run_pending_cleanup",
]
