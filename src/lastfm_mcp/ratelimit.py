"""Per-identity request admission control over the KV store.

Two fixed windows are counted per identity, one per minute and one per
hour. The window id is embedded in the KV key, so a new window is simply
a key nobody has written yet and old windows disappear through their TTL.

Any KV failure fails open: the error is logged and the request allowed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .kv import KVStore

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000
HOUR_MS = 3_600_000

# JSON-RPC "server error" code reported to MCP clients
RATE_LIMIT_ERROR_CODE = -32000


@dataclass
class RateLimitConfig:
    """Request ceilings per identity."""

    requests_per_minute: int = 60
    requests_per_hour: int = 1000

    def __post_init__(self):
        if self.requests_per_minute <= 0 or self.requests_per_hour <= 0:
            raise ValueError("Rate limits must be positive")


@dataclass
class RateLimitResult:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request may proceed
        remaining: Requests left in the tighter window (None when failing open)
        reset_time: Start of the next window for the limit hit, epoch ms
        error_code: JSON-RPC error code when denied
        error_message: Human-readable denial reason
    """

    allowed: bool
    remaining: Optional[int] = None
    reset_time: Optional[int] = None
    error_code: Optional[int] = None
    error_message: Optional[str] = None


@dataclass
class WindowStatus:
    remaining: int
    reset_time: int


@dataclass
class RemainingRequests:
    minute: WindowStatus
    hour: WindowStatus

    def to_dict(self) -> dict:
        return {
            "minute": {"remaining": self.minute.remaining, "reset_time": self.minute.reset_time},
            "hour": {"remaining": self.hour.remaining, "reset_time": self.hour.reset_time},
        }


def parse_count(raw: Optional[str]) -> int:
    """Stored counter value as an int; missing or garbage counts as 0."""
    if raw is None:
        return 0
    try:
        count = int(raw.strip())
    except (ValueError, AttributeError):
        logger.warning(f"Ignoring invalid rate limit counter value: {raw!r}")
        return 0
    return max(count, 0)


def _iso(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class RateLimiter:
    """Fixed-window rate limiter keyed by caller identity.

    The check reads both counters, then writes both; the pair is not
    atomic, so concurrent requests at a boundary may overshoot slightly.

    Attributes:
        kv: Backing key-value store
        config: Per-minute and per-hour ceilings
        clock: Callable returning the current time in epoch seconds
    """

    def __init__(
        self,
        kv: KVStore,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.kv = kv
        self.config = config or RateLimitConfig()
        self.clock = clock

    @staticmethod
    def window_key(identity: str, window: str, window_id: int) -> str:
        return f"rl:{identity}:{window}:{window_id}"

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def _read_count(self, key: str) -> int:
        """Counter for ``key``; storage faults read as 0. Never raises."""
        try:
            return parse_count(await self.kv.get(key))
        except Exception as e:
            logger.error(f"Rate limit counter read failed for {key}: {e}")
            return 0

    async def check_limit(self, identity: str) -> RateLimitResult:
        """Admit or deny one request for ``identity``.

        Denied requests do not consume budget. Allowed requests increment
        both window counters.

        Args:
            identity: Caller identity (user name, session id, ...)

        Returns:
            RateLimitResult; allowed=True whenever the KV store misbehaves
        """
        now = self._now_ms()
        minute_id = now // MINUTE_MS
        hour_id = now // HOUR_MS
        minute_key = self.window_key(identity, "minute", minute_id)
        hour_key = self.window_key(identity, "hour", hour_id)

        try:
            minute_count, hour_count = await asyncio.gather(
                self.kv.get(minute_key), self.kv.get(hour_key)
            )
            minute_count = parse_count(minute_count)
            hour_count = parse_count(hour_count)

            if minute_count >= self.config.requests_per_minute:
                return self._denied(
                    minute_count, self.config.requests_per_minute, "minute", (minute_id + 1) * MINUTE_MS
                )
            if hour_count >= self.config.requests_per_hour:
                return self._denied(
                    hour_count, self.config.requests_per_hour, "hour", (hour_id + 1) * HOUR_MS
                )

            await asyncio.gather(
                self.kv.put(minute_key, str(minute_count + 1), expiration_ttl=MINUTE_MS // 1000),
                self.kv.put(hour_key, str(hour_count + 1), expiration_ttl=HOUR_MS // 1000),
            )
        except Exception as e:
            logger.error(f"Rate limit check failed for {identity}, allowing request: {e}")
            return RateLimitResult(allowed=True)

        return RateLimitResult(
            allowed=True,
            remaining=min(
                self.config.requests_per_minute - minute_count - 1,
                self.config.requests_per_hour - hour_count - 1,
            ),
        )

    def _denied(self, count: int, limit: int, window: str, reset_time: int) -> RateLimitResult:
        message = (
            f"Rate limit exceeded: {count}/{limit} requests per {window}. "
            f"Try again after {_iso(reset_time)}"
        )
        logger.warning(message)
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_time=reset_time,
            error_code=RATE_LIMIT_ERROR_CODE,
            error_message=message,
        )

    async def get_remaining_requests(self, identity: str) -> RemainingRequests:
        """Remaining budget per window, without touching the counters."""
        now = self._now_ms()
        minute_id = now // MINUTE_MS
        hour_id = now // HOUR_MS

        minute_count, hour_count = await asyncio.gather(
            self._read_count(self.window_key(identity, "minute", minute_id)),
            self._read_count(self.window_key(identity, "hour", hour_id)),
        )

        return RemainingRequests(
            minute=WindowStatus(
                remaining=max(0, self.config.requests_per_minute - minute_count),
                reset_time=(minute_id + 1) * MINUTE_MS,
            ),
            hour=WindowStatus(
                remaining=max(0, self.config.requests_per_hour - hour_count),
                reset_time=(hour_id + 1) * HOUR_MS,
            ),
        )

    async def reset_user_limits(self, identity: str) -> int:
        """Delete every rate-limit counter of ``identity``.

        Returns:
            Number of counters removed

        Raises:
            KVStoreError: If the store fails; this administrative path does not fail open
        """
        listing = await self.kv.list(prefix=f"rl:{identity}:")
        for key in listing.keys:
            await self.kv.delete(key.name)
        logger.info(f"Reset {len(listing.keys)} rate limit entries for {identity}")
        return len(listing.keys)
