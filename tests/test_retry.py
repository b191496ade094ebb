"""Tests for with_retry / fetch_with_retry backoff and Retry-After handling.

HTTP is served by httpx.MockTransport and sleeping is replaced by an
AsyncMock, so delays are asserted without waiting for them.
"""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from unittest.mock import AsyncMock

import httpx
import pytest

from lastfm_mcp.exceptions import UpstreamResponseError
from lastfm_mcp.retry import (
    RetryOptions,
    calculate_delay,
    default_should_retry,
    fetch_with_retry,
    parse_retry_after,
    with_retry,
)

URL = "https://ws.audioscrobbler.com/2.0/"


class FlakyOperation:
    """Operation failing ``failures`` times before returning ``result``."""

    def __init__(self, failures, error=None, result="ok"):
        self.failures = failures
        self.error = error or ConnectionError("network unreachable")
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


def scripted_client(*responses):
    """AsyncClient answering with the given responses in order."""
    calls = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, calls


@pytest.mark.asyncio
async def test_success_on_first_attempt():
    sleep = AsyncMock()
    operation = FlakyOperation(failures=0)

    result = await with_retry(operation, RetryOptions(max_retries=3), sleep=sleep)

    assert result.success is True
    assert result.data == "ok"
    assert result.attempts == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_recovers_after_transient_failures():
    sleep = AsyncMock()
    operation = FlakyOperation(failures=2)

    result = await with_retry(operation, RetryOptions(max_retries=3), sleep=sleep)

    assert result.success is True
    assert result.attempts == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_should_retry_false_means_single_attempt():
    """Verify a non-retryable error stops after one attempt regardless of the budget."""
    sleep = AsyncMock()
    operation = FlakyOperation(failures=10)

    result = await with_retry(
        operation,
        RetryOptions(max_retries=5, should_retry=lambda error, attempt: False),
        sleep=sleep,
    )

    assert result.success is False
    assert result.attempts == 1
    assert operation.calls == 1
    assert isinstance(result.error, ConnectionError)
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_always_failing_makes_max_retries_plus_one_attempts():
    sleep = AsyncMock()
    operation = FlakyOperation(failures=100)

    result = await with_retry(
        operation,
        RetryOptions(max_retries=2, should_retry=lambda error, attempt: True),
        sleep=sleep,
    )

    assert result.success is False
    assert result.attempts == 3
    assert operation.calls == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_should_retry_receives_attempt_number():
    seen = []

    def should_retry(error, attempt):
        seen.append(attempt)
        return True

    await with_retry(FlakyOperation(failures=100), RetryOptions(max_retries=3, should_retry=should_retry), sleep=AsyncMock())

    assert seen == [1, 2, 3]


@pytest.mark.asyncio
async def test_backoff_schedule_is_exponential(mocker):
    mocker.patch("lastfm_mcp.retry.random.random", return_value=0.0)
    sleep = AsyncMock()

    await with_retry(
        FlakyOperation(failures=100),
        RetryOptions(max_retries=4, initial_delay=0.5, max_delay=3.0),
        sleep=sleep,
    )

    assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0, 2.0, 3.0]


def test_calculate_delay_jitter_bounds(mocker):
    options = RetryOptions(initial_delay=1.0, jitter_factor=0.1)

    mocker.patch("lastfm_mcp.retry.random.random", return_value=0.999)
    assert 4.0 <= calculate_delay(3, options) < 4.4


def test_calculate_delay_retry_after_is_never_shortened(mocker):
    mocker.patch("lastfm_mcp.retry.random.random", return_value=0.0)
    options = RetryOptions(max_delay=15.0)

    assert calculate_delay(1, options, retry_after=5.0) == 5.0
    assert calculate_delay(1, options, retry_after=120.0) == 120.0


def test_calculate_delay_zero_retry_after_uses_backoff(mocker):
    mocker.patch("lastfm_mcp.retry.random.random", return_value=0.0)

    assert calculate_delay(2, RetryOptions(initial_delay=1.0), retry_after=0.0) == 2.0


def test_parse_retry_after_seconds():
    assert parse_retry_after("5") == 5.0
    assert parse_retry_after(" 12 ") == 12.0


@pytest.mark.parametrize("header,expected", [("5.5", 5.5), ("1.5", 1.5), ("10.0", 10.0)])
def test_parse_retry_after_fractional_seconds(header, expected):
    assert parse_retry_after(header) == expected


def test_parse_retry_after_http_date():
    now = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
    header = format_datetime(now + timedelta(seconds=30), usegmt=True)

    assert parse_retry_after(header, now=now) == pytest.approx(30.0)


@pytest.mark.parametrize("header", [None, "", "0", " 0 ", "0.0", "soon", "-3", "Wed, 21 Oct 2015 07:28:00 GMT"])
def test_parse_retry_after_unusable(header):
    assert parse_retry_after(header) is None


def test_default_should_retry_classification():
    request = httpx.Request("GET", URL)

    assert default_should_retry(UpstreamResponseError(httpx.Response(429)), 1)
    assert default_should_retry(UpstreamResponseError(httpx.Response(502)), 1)
    assert not default_should_retry(UpstreamResponseError(httpx.Response(404)), 1)
    assert default_should_retry(httpx.ConnectError("refused", request=request), 1)
    assert default_should_retry(RuntimeError("Rate limit reached"), 1)
    assert not default_should_retry(KeyError("user"), 1)


@pytest.mark.asyncio
async def test_fetch_honors_retry_after_on_429():
    """Verify a 429 with Retry-After: 5 waits at least 5 seconds before retrying."""
    client, calls = scripted_client(
        httpx.Response(429, headers={"Retry-After": "5"}),
        httpx.Response(200, json={"ok": True}),
    )
    sleep = AsyncMock()

    response = await fetch_with_retry(URL, client=client, sleep=sleep)

    assert response.status_code == 200
    assert len(calls) == 2
    delay = sleep.await_args_list[0].args[0]
    assert 5.0 <= delay <= 5.5


@pytest.mark.asyncio
async def test_fetch_retry_after_on_503_is_honored_too():
    client, calls = scripted_client(
        httpx.Response(503, headers={"Retry-After": "2"}),
        httpx.Response(200, json={}),
    )
    sleep = AsyncMock()

    await fetch_with_retry(URL, client=client, sleep=sleep)

    assert 2.0 <= sleep.await_args_list[0].args[0] <= 2.2


@pytest.mark.asyncio
async def test_fetch_429_without_header_uses_backoff(mocker):
    mocker.patch("lastfm_mcp.retry.random.random", return_value=0.0)
    client, _ = scripted_client(httpx.Response(429), httpx.Response(200))
    sleep = AsyncMock()

    await fetch_with_retry(URL, client=client, options=RetryOptions(initial_delay=1.5), sleep=sleep)

    assert sleep.await_args_list[0].args[0] == 1.5


@pytest.mark.asyncio
async def test_fetch_400_fails_immediately():
    client, calls = scripted_client(httpx.Response(400))
    sleep = AsyncMock()

    with pytest.raises(UpstreamResponseError) as exc_info:
        await fetch_with_retry(URL, client=client, sleep=sleep)

    assert exc_info.value.status_code == 400
    assert exc_info.value.status_text == "Bad Request"
    assert exc_info.value.attempts == 1
    assert len(calls) == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_fetch_5xx_exhausts_retries():
    client, calls = scripted_client(httpx.Response(503))
    sleep = AsyncMock()

    with pytest.raises(UpstreamResponseError) as exc_info:
        await fetch_with_retry(URL, client=client, options=RetryOptions(max_retries=2), sleep=sleep)

    assert exc_info.value.status_code == 503
    assert exc_info.value.attempts == 3
    assert str(exc_info.value) == "HTTP 503: Service Unavailable"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_fetch_custom_should_retry_cannot_retry_404():
    client, calls = scripted_client(httpx.Response(404))

    with pytest.raises(UpstreamResponseError):
        await fetch_with_retry(
            URL,
            client=client,
            options=RetryOptions(should_retry=lambda error, attempt: True),
            sleep=AsyncMock(),
        )

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_fetch_retries_transport_errors():
    request = httpx.Request("GET", URL)
    client, calls = scripted_client(
        httpx.ConnectError("connection refused", request=request),
        httpx.Response(200, json={"ok": True}),
    )

    response = await fetch_with_retry(URL, client=client, sleep=AsyncMock())

    assert response.json() == {"ok": True}
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_fetch_passes_request_options():
    client, calls = scripted_client(httpx.Response(200))

    await fetch_with_retry(
        URL, method="GET", client=client, params={"method": "user.getInfo"}, headers={"User-Agent": "test"}
    )

    assert calls[0].url.params["method"] == "user.getInfo"
    assert calls[0].headers["User-Agent"] == "test"


@pytest.mark.asyncio
async def test_fetch_retry_after_zero_keeps_exponential_backoff(mocker):
    mocker.patch("lastfm_mcp.retry.random.random", return_value=0.0)
    client, calls = scripted_client(
        httpx.Response(429, headers={"Retry-After": "0"}),
        httpx.Response(429, headers={"Retry-After": "0"}),
        httpx.Response(200, json={"ok": True}),
    )
    sleep = AsyncMock()

    response = await fetch_with_retry(URL, client=client, options=RetryOptions(initial_delay=1.0), sleep=sleep)

    assert response.status_code == 200
    assert len(calls) == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_fetch_fractional_retry_after_is_honored(mocker):
    mocker.patch("lastfm_mcp.retry.random.random", return_value=0.0)
    client, _ = scripted_client(httpx.Response(503, headers={"Retry-After": "5.5"}), httpx.Response(200))
    sleep = AsyncMock()

    await fetch_with_retry(URL, client=client, sleep=sleep)

    assert sleep.await_args_list[0].args[0] == 5.5
