"""Per-identity request log stored in the KV store.

Each tool call becomes one JSON entry under ``log:{identity}:{epoch_ms}:{random}``
kept for 30 days.
"""

import json
import logging
import secrets
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from .kv import KVStore

logger = logging.getLogger(__name__)

LOG_TTL = 30 * 24 * 60 * 60


@dataclass
class LogEntry:
    """One logged request.

    Attributes:
        timestamp: ISO-8601 UTC time of the request
        identity: Caller identity
        method: Tool or API method name
        params: Call arguments
        status: "success" or "error"
        latency: Wall time in milliseconds
    """

    timestamp: str
    identity: str
    method: str
    params: Any
    status: str
    latency: int
    error_code: Optional[int] = None
    error_message: Optional[str] = None


class RequestLogger:
    """Writes and reads LogEntry records for one KV store."""

    def __init__(self, kv: KVStore, clock: Callable[[], float] = time.time):
        self.kv = kv
        self.clock = clock

    async def log(
        self,
        identity: str,
        method: str,
        params: Any,
        status: str,
        latency: int,
        error_code: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> str:
        """Store one entry.

        Returns:
            The KV key the entry was written under

        Raises:
            KVStoreError: If the write fails
        """
        now = self.clock()
        entry = LogEntry(
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            identity=identity,
            method=method,
            params=params,
            status=status,
            latency=latency,
            error_code=error_code,
            error_message=error_message,
        )
        key = f"log:{identity}:{int(now * 1000)}:{secrets.token_hex(5)}"
        await self.kv.put(key, json.dumps(asdict(entry), default=str), expiration_ttl=LOG_TTL)
        return key

    async def get_logs(self, identity: str, limit: int = 100) -> List[LogEntry]:
        """Entries for ``identity``, newest first. Unreadable entries are skipped."""
        listing = await self.kv.list(prefix=f"log:{identity}:")
        names = sorted((key.name for key in listing.keys), key=_key_millis, reverse=True)

        entries: List[LogEntry] = []
        for name in names:
            if len(entries) >= limit:
                break
            raw = await self.kv.get(name)
            if raw is None:
                continue
            try:
                entries.append(LogEntry(**json.loads(raw)))
            except (ValueError, TypeError) as e:
                logger.error(f"Failed to parse log entry {name}: {e}")

        return entries


def _key_millis(name: str) -> int:
    # log:{identity}:{epoch_ms}:{random}; identity may itself contain ':'
    try:
        return int(name.rsplit(":", 2)[1])
    except (IndexError, ValueError):
        return 0
