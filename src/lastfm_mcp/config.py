"""Configuration management for the Last.fm MCP server.

All configuration is read from environment variables. The server entry
point loads a .env file first when one exists.
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from .cache.models import CacheConfig
from .ratelimit import RateLimitConfig


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass
class ServerConfig:
    """Configuration for the MCP server (reads from environment)."""

    # Required: Last.fm
    lastfm_api_key: str

    # Optional: default caller identity for stdio sessions
    lastfm_username: Optional[str] = None

    # Optional: persistent KV store; None disables caching
    kv_path: Optional[str] = None

    cache: CacheConfig = field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    # Seconds between stale pending-request sweeps
    cleanup_interval: int = 60

    @property
    def identity(self) -> str:
        """Identity used for rate limiting and request logs."""
        return self.lastfm_username or 'anonymous'

    @classmethod
    def from_environment(cls) -> 'ServerConfig':
        """Load configuration from environment variables.

        Returns:
            ServerConfig: Loaded configuration object

        Raises:
            EnvironmentError: If required environment variables are missing
            ValueError: If a numeric variable is not an integer
        """
        api_key = os.getenv('LASTFM_API_KEY')
        if not api_key:
            raise EnvironmentError(
                "Required environment variables missing: LASTFM_API_KEY\n"
                "Example: export LASTFM_API_KEY='your-api-key'"
            )

        config = cls(
            lastfm_api_key=api_key,
            lastfm_username=os.getenv('LASTFM_USERNAME') or None,
            kv_path=os.getenv('LASTFM_MCP_KV_PATH') or None,
            rate_limit=RateLimitConfig(
                requests_per_minute=_int_env('LASTFM_MCP_RATE_PER_MINUTE', 60),
                requests_per_hour=_int_env('LASTFM_MCP_RATE_PER_HOUR', 1000),
            ),
            cleanup_interval=_int_env('LASTFM_MCP_CLEANUP_INTERVAL', 60),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate numeric settings.

        Raises:
            ValueError: If a value is out of range
        """
        if self.cleanup_interval <= 0:
            raise ValueError(
                f"Invalid cleanup_interval: {self.cleanup_interval}. Must be > 0"
            )
