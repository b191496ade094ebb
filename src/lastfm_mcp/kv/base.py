"""Key-value store abstraction consumed by the cache and the rate limiter.

The store is a network-style map with string keys, string values, optional
per-write expiry (in seconds) and prefix listing. Backends raise
KVStoreError on storage failure; callers decide whether to mask it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_LIST_LIMIT = 1000


@dataclass
class KVKey:
    """One key returned by a list operation.

    Attributes:
        name: Full key name
        expiration: Absolute expiry as epoch seconds, if the key has one
    """

    name: str
    expiration: Optional[int] = None


@dataclass
class KVListResult:
    """Result of a prefix listing.

    Attributes:
        keys: Matching keys in lexicographic order
        list_complete: False when more keys matched than the limit allowed
    """

    keys: List[KVKey] = field(default_factory=list)
    list_complete: bool = True


class KVStore(ABC):
    """Async key-value store interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is missing or expired."""

    @abstractmethod
    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        """Store a value, optionally expiring after ``expiration_ttl`` seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key. Deleting a missing key is not an error."""

    @abstractmethod
    async def list(self, prefix: str = "", limit: int = DEFAULT_LIST_LIMIT) -> KVListResult:
        """List live keys starting with ``prefix``, at most ``limit`` of them."""
