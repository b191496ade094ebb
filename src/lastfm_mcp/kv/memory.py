"""In-process key-value store with per-key expiry."""

import time
from typing import Callable, Dict, Optional, Tuple

from .base import DEFAULT_LIST_LIMIT, KVKey, KVListResult, KVStore


class MemoryKVStore(KVStore):
    """Dictionary-backed KVStore.

    Expired keys are invisible to get/list and are dropped when touched.
    Suitable for tests and single-process deployments; nothing survives a
    restart.

    Attributes:
        clock: Callable returning the current time in epoch seconds
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _is_live(self, key: str) -> bool:
        item = self._data.get(key)
        if item is None:
            return False
        _, expires_at = item
        if expires_at is not None and self.clock() > expires_at:
            del self._data[key]
            return False
        return True

    async def get(self, key: str) -> Optional[str]:
        if not self._is_live(key):
            return None
        return self._data[key][0]

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        expires_at = self.clock() + expiration_ttl if expiration_ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(self, prefix: str = "", limit: int = DEFAULT_LIST_LIMIT) -> KVListResult:
        names = sorted(k for k in list(self._data) if k.startswith(prefix) and self._is_live(k))
        keys = []
        for name in names[:limit]:
            expires_at = self._data[name][1]
            keys.append(KVKey(name=name, expiration=int(expires_at) if expires_at is not None else None))
        return KVListResult(keys=keys, list_complete=len(names) <= limit)

    def __len__(self) -> int:
        return sum(1 for k in list(self._data) if self._is_live(k))
