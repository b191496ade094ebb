"""Key-value store backends."""

from .base import KVKey, KVListResult, KVStore
from .memory import MemoryKVStore
from .sqlite import SQLiteKVStore

__all__ = [
    "KVStore",
    "KVKey",
    "KVListResult",
    "MemoryKVStore",
    "SQLiteKVStore",
]
