"""Retry with jittered exponential backoff and Retry-After support.

``with_retry`` wraps any coroutine function and reports a RetryResult
instead of raising. ``fetch_with_retry`` specialises it for HTTP: 429 and
5xx responses are retried, every other non-success status fails at once,
and a Retry-After header sets the minimum wait before the next attempt.
"""

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import httpx
from dateutil.parser import parse as parse_date

from .exceptions import UpstreamResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ShouldRetry = Callable[[BaseException, int], bool]
Sleep = Callable[[float], Awaitable[Any]]

RETRYABLE_MESSAGE_HINTS = ("network", "timeout", "timed out", "fetch failed", "429", "rate limit")

NUMERIC_RETRY_AFTER = re.compile(r"^[+-]?\d+(\.\d*)?$")


@dataclass
class RetryOptions:
    """Retry budget and delay schedule.

    Attributes:
        max_retries: Retries after the initial attempt (total attempts = max_retries + 1)
        initial_delay: Delay before the first retry, seconds
        max_delay: Upper bound on the exponential delay, seconds
        backoff_multiplier: Growth factor per attempt
        jitter_factor: Random extra delay as a fraction of the base delay
        should_retry: Predicate(error, attempt); defaults to default_should_retry
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1
    should_retry: Optional[ShouldRetry] = None

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")


@dataclass
class RetryResult(Generic[T]):
    """Settled outcome of a retried operation.

    Attributes:
        success: True if some attempt returned
        data: Value returned by the successful attempt
        error: Last error when success is False
        attempts: Attempts made, including the initial one
    """

    success: bool
    attempts: int
    data: Optional[T] = None
    error: Optional[BaseException] = None


def default_should_retry(error: BaseException, attempt: int) -> bool:
    """Retry rate limits, server errors and network failures."""
    if isinstance(error, UpstreamResponseError):
        return error.status_code == 429 or error.status_code >= 500
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return True
    message = str(error).lower()
    return any(hint in message for hint in RETRYABLE_MESSAGE_HINTS)


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parse a Retry-After header into seconds to wait.

    Accepts delta-seconds ("120", also "1.5") or an HTTP date. Zero,
    negative values, dates in the past and values that are neither return
    None, so the normal backoff applies.

    Args:
        value: Raw header value
        now: Reference time for HTTP dates (defaults to the current UTC time)

    Returns:
        Seconds to wait, or None if the header is absent or unusable
    """
    if not value:
        return None
    value = value.strip()

    if NUMERIC_RETRY_AFTER.match(value):
        seconds = float(value)
        return seconds if 0 < seconds < float("inf") else None

    try:
        retry_at = parse_date(value)
    except (ValueError, OverflowError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    delay = (retry_at - (now or datetime.now(timezone.utc))).total_seconds()
    return delay if delay > 0 else None


def calculate_delay(attempt: int, options: RetryOptions, retry_after: Optional[float] = None) -> float:
    """Seconds to sleep after failed attempt number ``attempt`` (1-based).

    Exponential: initial_delay * multiplier ** (attempt - 1), plus up to
    jitter_factor of extra random delay, capped at max_delay. A Retry-After
    value replaces the exponential base and is never shortened by the cap.
    """
    if retry_after is not None and retry_after > 0:
        jitter = random.random() * options.jitter_factor * retry_after
        return min(retry_after + jitter, max(options.max_delay, retry_after))

    exponential = options.initial_delay * options.backoff_multiplier ** (attempt - 1)
    jitter = random.random() * options.jitter_factor * exponential
    return min(exponential + jitter, options.max_delay)


def _retry_after_of(error: BaseException) -> Optional[float]:
    if isinstance(error, UpstreamResponseError):
        return parse_retry_after(error.retry_after)
    if isinstance(error, httpx.HTTPStatusError):
        return parse_retry_after(error.response.headers.get("Retry-After"))
    return None


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    sleep: Sleep = asyncio.sleep,
) -> RetryResult[T]:
    """Run ``operation`` until it succeeds, is not retryable, or the budget runs out.

    Args:
        operation: Argument-less coroutine function
        options: Retry budget and schedule (defaults to RetryOptions())
        sleep: Awaitable sleep used between attempts

    Returns:
        RetryResult; errors are reported in it, never raised
    """
    options = options or RetryOptions()
    should_retry = options.should_retry or default_should_retry
    total_attempts = options.max_retries + 1
    last_error: Optional[BaseException] = None

    for attempt in range(1, total_attempts + 1):
        try:
            data = await operation()
            return RetryResult(success=True, data=data, attempts=attempt)
        except Exception as e:
            last_error = e

            if attempt >= total_attempts:
                logger.warning(f"Giving up after {attempt} attempts: {e}")
                return RetryResult(success=False, error=e, attempts=attempt)

            if not should_retry(e, attempt):
                logger.debug(f"Not retrying non-retryable error on attempt {attempt}: {e}")
                return RetryResult(success=False, error=e, attempts=attempt)

            delay = calculate_delay(attempt, options, _retry_after_of(e))
            logger.info(
                f"Attempt {attempt}/{total_attempts} failed: {e}. Retrying in {delay:.2f}s..."
            )
            await sleep(delay)

    return RetryResult(success=False, error=last_error, attempts=total_attempts)


async def fetch_with_retry(
    url: str,
    method: str = "GET",
    client: Optional[httpx.AsyncClient] = None,
    options: Optional[RetryOptions] = None,
    sleep: Sleep = asyncio.sleep,
    **request_kwargs,
) -> httpx.Response:
    """Perform an HTTP request, retrying 429 and 5xx responses.

    Args:
        url: Request URL
        method: HTTP method
        client: Shared AsyncClient; a short-lived one is created if omitted
        options: Retry budget and schedule; its should_retry only sees
            non-HTTP errors such as transport failures
        sleep: Awaitable sleep used between attempts
        **request_kwargs: Passed through to ``AsyncClient.request``

    Returns:
        The first 2xx response

    Raises:
        UpstreamResponseError: Non-retryable status, or retries exhausted
        httpx.HTTPError: Transport failure that was not retried or kept failing
    """
    options = options or RetryOptions()
    fallback = options.should_retry or default_should_retry

    def should_retry(error: BaseException, attempt: int) -> bool:
        if isinstance(error, UpstreamResponseError):
            return error.status_code == 429 or error.status_code >= 500
        return fallback(error, attempt)

    retry_options = RetryOptions(
        max_retries=options.max_retries,
        initial_delay=options.initial_delay,
        max_delay=options.max_delay,
        backoff_multiplier=options.backoff_multiplier,
        jitter_factor=options.jitter_factor,
        should_retry=should_retry,
    )

    async def run(http: httpx.AsyncClient) -> httpx.Response:
        async def attempt() -> httpx.Response:
            response = await http.request(method, url, **request_kwargs)
            if not response.is_success:
                raise UpstreamResponseError(response)
            return response

        result = await with_retry(attempt, retry_options, sleep=sleep)
        if not result.success:
            if isinstance(result.error, UpstreamResponseError):
                result.error.attempts = result.attempts
            raise result.error
        return result.data

    if client is not None:
        return await run(client)

    async with httpx.AsyncClient(follow_redirects=True, timeout=httpx.Timeout(30.0)) as http:
        return await run(http)
