"""MCP Tools Registry - Last.fm listening data tools.

Each tool handler is a coroutine named ``_<tool name>`` taking the tool
arguments dict and returning JSON-serializable data. The server routes
calls to them through safe_tool_execution.
"""

from typing import Any, Optional

import mcp.types as types

from .cache import ResponseCache
from .lastfm import PERIODS, CachedLastfmClient
from .ratelimit import RateLimiter

USERNAME_PROPERTY = {
    "type": "string",
    "description": "Last.fm username (defaults to the configured user)",
    "minLength": 1,
}


def _limit_property(default: int, maximum: int = 200) -> dict:
    return {
        "type": "integer",
        "description": f"Maximum number of results (1-{maximum})",
        "minimum": 1,
        "maximum": maximum,
        "default": default,
    }


def _bounded_int(arguments: dict[str, Any], name: str, default: int, maximum: int = 200) -> int:
    value = arguments.get(name, default)
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer")
    if not 1 <= value <= maximum:
        raise ValueError(f"{name} must be between 1 and {maximum}")
    return value


def _required_str(arguments: dict[str, Any], name: str) -> str:
    value = arguments.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} is required")
    return value.strip()


class ToolRegistry:
    """Registry for the Last.fm MCP tools.

    Provides 7 tools:
        1. get_recent_tracks - Recent scrobbles of a user
        2. get_top_artists - Most played artists of a user for a period
        3. get_track_info - Details about a track
        4. get_similar_artists - Artists similar to a given artist
        5. get_recommendations - Artist recommendations from listening history
        6. get_cache_stats - Cache introspection
        7. get_rate_limit_status - Remaining request budget for the caller
    """

    def __init__(
        self,
        lastfm: CachedLastfmClient,
        cache: ResponseCache,
        rate_limiter: RateLimiter,
        identity: str,
        default_username: Optional[str] = None,
    ):
        """Initialize tool registry.

        Args:
            lastfm: Cached Last.fm client
            cache: The cache shared with ``lastfm`` (for stats)
            rate_limiter: Limiter reporting the caller's remaining budget
            identity: Caller identity
            default_username: Username used when a tool call omits one
        """
        self.lastfm = lastfm
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.identity = identity
        self.default_username = default_username
        self.tools = self._define_tools()

    def get_all(self) -> list[types.Tool]:
        return list(self.tools.values())

    def _define_tools(self) -> dict[str, types.Tool]:
        return {
            "get_recent_tracks": types.Tool(
                name="get_recent_tracks",
                description="Get a user's most recently scrobbled tracks",
                inputSchema={
                    "type": "object",
                    "properties": {"username": USERNAME_PROPERTY, "limit": _limit_property(50)},
                },
            ),
            "get_top_artists": types.Tool(
                name="get_top_artists",
                description="Get a user's most played artists for a period",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "username": USERNAME_PROPERTY,
                        "period": {"type": "string", "enum": list(PERIODS), "default": "overall"},
                        "limit": _limit_property(50),
                    },
                },
            ),
            "get_track_info": types.Tool(
                name="get_track_info",
                description="Get detailed information about a track",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "artist": {"type": "string", "minLength": 1},
                        "track": {"type": "string", "minLength": 1},
                        "username": USERNAME_PROPERTY,
                    },
                    "required": ["artist", "track"],
                },
            ),
            "get_similar_artists": types.Tool(
                name="get_similar_artists",
                description="Find artists similar to the given artist",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "artist": {"type": "string", "minLength": 1},
                        "limit": _limit_property(30, maximum=100),
                    },
                    "required": ["artist"],
                },
            ),
            "get_recommendations": types.Tool(
                name="get_recommendations",
                description="Recommend artists based on a user's listening history",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "username": USERNAME_PROPERTY,
                        "limit": _limit_property(20, maximum=50),
                        "genre": {"type": "string"},
                    },
                },
            ),
            "get_cache_stats": types.Tool(
                name="get_cache_stats",
                description="Show how many responses are cached, per data type",
                inputSchema={"type": "object", "properties": {}},
            ),
            "get_rate_limit_status": types.Tool(
                name="get_rate_limit_status",
                description="Show the remaining request budget for this minute and hour",
                inputSchema={"type": "object", "properties": {}},
            ),
        }

    def _username(self, arguments: dict[str, Any]) -> str:
        username = arguments.get("username") or self.default_username
        if not username:
            raise ValueError("username is required (no default Last.fm user configured)")
        return username

    async def _get_recent_tracks(self, arguments: dict[str, Any]) -> dict:
        return await self.lastfm.get_recent_tracks(
            self._username(arguments), limit=_bounded_int(arguments, "limit", 50)
        )

    async def _get_top_artists(self, arguments: dict[str, Any]) -> dict:
        return await self.lastfm.get_top_artists(
            self._username(arguments),
            period=arguments.get("period", "overall"),
            limit=_bounded_int(arguments, "limit", 50),
        )

    async def _get_track_info(self, arguments: dict[str, Any]) -> dict:
        return await self.lastfm.get_track_info(
            _required_str(arguments, "artist"),
            _required_str(arguments, "track"),
            username=arguments.get("username") or self.default_username,
        )

    async def _get_similar_artists(self, arguments: dict[str, Any]) -> dict:
        return await self.lastfm.get_similar_artists(
            _required_str(arguments, "artist"), limit=_bounded_int(arguments, "limit", 30, maximum=100)
        )

    async def _get_recommendations(self, arguments: dict[str, Any]) -> dict:
        return await self.lastfm.get_music_recommendations(
            self._username(arguments),
            limit=_bounded_int(arguments, "limit", 20, maximum=50),
            genre=arguments.get("genre"),
        )

    async def _get_cache_stats(self, arguments: dict[str, Any]) -> dict:
        stats = await self.cache.get_stats()
        return stats.to_dict()

    async def _get_rate_limit_status(self, arguments: dict[str, Any]) -> dict:
        remaining = await self.rate_limiter.get_remaining_requests(self.identity)
        return remaining.to_dict()
