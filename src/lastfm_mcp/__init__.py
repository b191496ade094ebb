"""Last.fm MCP Server - resilient Model Context Protocol access to Last.fm.

This package exposes Last.fm listening data to LLM applications through an
MCP server, with a resilience layer between the tool handlers and the
upstream API.

Components:
    - cache/: KV-backed response cache with in-flight request coalescing
    - ratelimit.py: Per-identity fixed-window admission control
    - retry.py: Jittered exponential backoff with Retry-After support
    - kv/: Key-value store backends (memory, SQLite)
    - lastfm/: Last.fm API client and its cached wrapper
    - request_log.py: Per-identity request log stored in the KV store
    - server.py, tools.py, utils.py: MCP host wiring
"""

__version__ = "0.1.0"
