"""Error handling utilities for the Last.fm MCP server.

This module runs tool handlers behind the rate limiter and turns every
failure into a user-friendly message.
"""

import json
import logging
import time
from typing import Any, Callable, Optional

import httpx
import mcp.types as types

from .exceptions import LastfmAPIError, UpstreamResponseError
from .ratelimit import RateLimiter
from .request_log import RequestLogger

logger = logging.getLogger(__name__)

# Last.fm error codes worth a specific message
LASTFM_INVALID_PARAMETERS = 6
LASTFM_RATE_LIMITED = 29


def _text(message: str) -> list[types.TextContent]:
    return [types.TextContent(type="text", text=message)]


def _describe_error(error: Exception) -> str:
    """User-facing message for an error raised by a tool handler."""
    if isinstance(error, LastfmAPIError):
        if error.code == LASTFM_INVALID_PARAMETERS:
            return f"Last.fm could not find what you asked for: {error.message}"
        if error.code == LASTFM_RATE_LIMITED:
            return "Last.fm is rate limiting requests right now. Please try again in a minute."
        return f"Last.fm error: {error.message}"

    if isinstance(error, UpstreamResponseError):
        if error.status_code == 429:
            return (
                f"Last.fm is rate limiting requests (gave up after {error.attempts} attempts). "
                "Please try again shortly."
            )
        if error.status_code >= 500:
            return (
                f"Last.fm is having trouble ({error.status_code} {error.status_text}) "
                f"after {error.attempts} attempts. Please try again later."
            )
        return f"Last.fm rejected the request: {error.status_code} {error.status_text}."

    if isinstance(error, httpx.ConnectError):
        return "Unable to connect to Last.fm. Please check your network connection."

    if isinstance(error, httpx.TimeoutException):
        return "Request timed out. Last.fm took too long to respond. Please try again."

    if isinstance(error, ValueError):
        return f"Invalid parameters. Please check your input: {error}"

    return f"An unexpected error occurred: {error}. Please check the logs for details."


async def safe_tool_execution(
    tool_name: str,
    handler: Callable,
    arguments: dict[str, Any],
    rate_limiter: Optional[RateLimiter] = None,
    identity: str = "anonymous",
    request_logger: Optional[RequestLogger] = None,
) -> list[types.TextContent]:
    """Execute tool with rate limiting and comprehensive error handling.

    Args:
        tool_name: Name of the tool being executed
        handler: Async function to execute
        arguments: Tool arguments
        rate_limiter: Admission control consulted before the handler runs
        identity: Caller identity for rate limiting and request logs
        request_logger: Optional per-identity request log

    Returns:
        list[types.TextContent]: Tool result or error message
    """
    if rate_limiter is not None:
        verdict = await rate_limiter.check_limit(identity)
        if not verdict.allowed:
            await _record(request_logger, identity, tool_name, arguments, 0, verdict.error_code, verdict.error_message)
            return _text(verdict.error_message or "Rate limit exceeded. Please try again later.")

    started = time.monotonic()
    try:
        result = await handler(arguments)
    except Exception as e:
        latency = int((time.monotonic() - started) * 1000)
        if isinstance(e, (LastfmAPIError, UpstreamResponseError, httpx.HTTPError, ValueError)):
            logger.error(f"{type(e).__name__} in {tool_name}: {e}")
        else:
            logger.exception(f"Unexpected error in {tool_name}")
        code = getattr(e, "code", None) if isinstance(e, LastfmAPIError) else getattr(e, "status_code", None)
        await _record(request_logger, identity, tool_name, arguments, latency, code, str(e))
        return _text(_describe_error(e))

    latency = int((time.monotonic() - started) * 1000)
    await _record(request_logger, identity, tool_name, arguments, latency)

    if isinstance(result, str):
        return _text(result)
    return _text(json.dumps(result, indent=2, default=str))


async def _record(
    request_logger: Optional[RequestLogger],
    identity: str,
    tool_name: str,
    arguments: dict[str, Any],
    latency: int,
    error_code: Optional[int] = None,
    error_message: Optional[str] = None,
) -> None:
    """Write a request log entry; a logging failure never fails the tool call."""
    if request_logger is None:
        return
    try:
        await request_logger.log(
            identity,
            tool_name,
            arguments,
            "error" if error_message else "success",
            latency,
            error_code=error_code,
            error_message=error_message,
        )
    except Exception as e:
        logger.warning(f"Could not write request log for {tool_name}: {e}")
