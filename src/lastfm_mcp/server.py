"""Main MCP Server class with stdio transport.

This module implements the MCPServer class that wires the resilience layer
(cache, rate limiter, retrying Last.fm client) to the MCP tool handlers.
"""

import asyncio
import logging
from typing import Any, Optional

import mcp.server.stdio
import mcp.types as types
from dotenv import load_dotenv
from mcp.server import Server

from .cache import create_lastfm_cache, run_pending_cleanup
from .config import ServerConfig
from .kv import KVStore, MemoryKVStore, SQLiteKVStore
from .lastfm import CachedLastfmClient, LastfmClient
from .logger import setup_logging
from .ratelimit import RateLimiter
from .request_log import RequestLogger
from .tools import ToolRegistry
from .utils import safe_tool_execution

logger = logging.getLogger(__name__)


class MCPServer:
    """Main MCP server class.

    This class:
    - Builds the KV store, cache, rate limiter and Last.fm client from config
    - Registers the Last.fm tools
    - Runs every tool call behind the rate limiter
    - Sweeps stale in-flight fetches in a background task
    """

    def __init__(self, config: ServerConfig, kv: Optional[KVStore] = None):
        """Initialize MCP server.

        Args:
            config: Server configuration
            kv: KV store override; by default an SQLiteKVStore when
                ``config.kv_path`` is set, else no store (caching disabled)
        """
        self.config = config

        if kv is None and config.kv_path:
            kv = SQLiteKVStore(config.kv_path)
        self.kv = kv

        self.cache = create_lastfm_cache(kv, config.cache)
        # Without a shared store, counters still need somewhere to live
        self.rate_limiter = RateLimiter(kv or MemoryKVStore(), config.rate_limit)
        self.request_logger = RequestLogger(kv) if kv is not None else None

        self.lastfm_client = LastfmClient(config.lastfm_api_key)
        self.lastfm = CachedLastfmClient(self.lastfm_client, self.cache)

        self.tool_registry = ToolRegistry(
            self.lastfm,
            self.cache,
            self.rate_limiter,
            identity=config.identity,
            default_username=config.lastfm_username,
        )

        self.server = Server("lastfm-mcp-server")
        self._register_handlers()

        logger.info(
            f"Last.fm MCP Server initialized (cache={'on' if kv is not None else 'off'}, "
            f"limits={config.rate_limit.requests_per_minute}/min "
            f"{config.rate_limit.requests_per_hour}/hour)"
        )

    def _register_handlers(self):
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[types.Tool]:
            """Return all available tools."""
            tools = self.tool_registry.get_all()
            logger.info(f"Listing {len(tools)} tools")
            return tools

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
            """Execute a tool by name."""
            return await self.call_tool(name, arguments)

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]]) -> list[types.TextContent]:
        """Route a tool call to its handler behind the rate limiter.

        Raises:
            ValueError: If no tool has this name
        """
        logger.info(f"Executing tool: {name} with args: {arguments}")

        if name not in self.tool_registry.tools:
            raise ValueError(f"Unknown tool: {name}")
        handler = getattr(self.tool_registry, f"_{name}")

        return await safe_tool_execution(
            name,
            handler,
            arguments or {},
            rate_limiter=self.rate_limiter,
            identity=self.config.identity,
            request_logger=self.request_logger,
        )

    async def run(self):
        """Run the MCP server with stdio transport."""
        logger.info("Starting Last.fm MCP Server with stdio transport")

        stop_event = asyncio.Event()
        cleanup_task = asyncio.create_task(
            run_pending_cleanup(self.cache, self.config.cleanup_interval, stop_event)
        )
        try:
            async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            stop_event.set()
            await cleanup_task
            await self.close()

    async def close(self):
        """Release the HTTP client and the KV store."""
        await self.lastfm_client.close()
        if isinstance(self.kv, SQLiteKVStore):
            self.kv.close()


async def main():
    """Main entry point for the MCP server."""
    load_dotenv()
    setup_logging()

    server = MCPServer(ServerConfig.from_environment())
    await server.run()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
