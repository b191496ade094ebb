"""SQLite-backed key-value store.

Lets the cache and rate-limit counters survive restarts on a single host.
sqlite3 is blocking, so every call runs in a worker thread.
"""

import asyncio
import logging
import sqlite3
import threading
import time
from typing import Callable, Optional

from ..exceptions import KVStoreError
from .base import DEFAULT_LIST_LIMIT, KVKey, KVListResult, KVStore

logger = logging.getLogger(__name__)


class SQLiteKVStore(KVStore):
    """KVStore persisted in an SQLite database file."""

    def __init__(self, db_path: str = 'lastfm_mcp_kv.db', clock: Callable[[], float] = time.time) -> None:
        """Initializes the store and creates the table if needed.

        Args:
            db_path: Path to the SQLite database file (":memory:" works too).
            clock: Callable returning the current time in epoch seconds.
        """
        self.db_path = db_path
        self.clock = clock
        self.connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Creates the kv table and its expiry index."""
        with self.connection as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                )
            ''')
            conn.execute('CREATE INDEX IF NOT EXISTS kv_expires_at ON kv (expires_at)')

    async def _run(self, fn: Callable, *args):
        try:
            return await asyncio.to_thread(self._locked, fn, *args)
        except sqlite3.Error as e:
            raise KVStoreError(f"SQLite KV operation failed: {e}") from e

    def _locked(self, fn: Callable, *args):
        with self._lock:
            return fn(*args)

    def _get(self, key: str) -> Optional[str]:
        now = self.clock()
        row = self.connection.execute(
            'SELECT value, expires_at FROM kv WHERE key = ?', (key,)
        ).fetchone()
        if row is None:
            return None
        value, expires_at = row
        if expires_at is not None and now > expires_at:
            with self.connection:
                self.connection.execute('DELETE FROM kv WHERE key = ?', (key,))
            return None
        return value

    def _put(self, key: str, value: str, expiration_ttl: Optional[int]) -> None:
        expires_at = self.clock() + expiration_ttl if expiration_ttl else None
        with self.connection:
            self.connection.execute(
                'INSERT OR REPLACE INTO kv (key, value, expires_at) VALUES (?, ?, ?)',
                (key, value, expires_at),
            )

    def _delete(self, key: str) -> None:
        with self.connection:
            self.connection.execute('DELETE FROM kv WHERE key = ?', (key,))

    def _list(self, prefix: str, limit: int) -> KVListResult:
        now = self.clock()
        # Escape LIKE wildcards so the prefix is matched literally
        pattern = prefix.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_') + '%'
        rows = self.connection.execute(
            "SELECT key, expires_at FROM kv WHERE key LIKE ? ESCAPE '\\' "
            "AND (expires_at IS NULL OR expires_at >= ?) ORDER BY key LIMIT ?",
            (pattern, now, limit + 1),
        ).fetchall()
        keys = [
            KVKey(name=name, expiration=int(expires_at) if expires_at is not None else None)
            for name, expires_at in rows[:limit]
        ]
        return KVListResult(keys=keys, list_complete=len(rows) <= limit)

    def _purge_expired(self) -> int:
        with self.connection:
            cursor = self.connection.execute(
                'DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at < ?', (self.clock(),)
            )
        return cursor.rowcount

    async def get(self, key: str) -> Optional[str]:
        return await self._run(self._get, key)

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        await self._run(self._put, key, value, expiration_ttl)

    async def delete(self, key: str) -> None:
        await self._run(self._delete, key)

    async def list(self, prefix: str = "", limit: int = DEFAULT_LIST_LIMIT) -> KVListResult:
        return await self._run(self._list, prefix, limit)

    async def purge_expired(self) -> int:
        """Deletes every expired row.

        Returns:
            Number of rows removed.
        """
        removed = await self._run(self._purge_expired)
        if removed:
            logger.debug(f"Purged {removed} expired KV rows from {self.db_path}")
        return removed

    def close(self) -> None:
        """Closes the underlying database connection."""
        self.connection.close()

    def __enter__(self) -> 'SQLiteKVStore':
        """Enter the runtime context for this object."""
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        """Exit the runtime context, clean up resources."""
        self.close()
