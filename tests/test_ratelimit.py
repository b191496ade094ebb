"""Tests for RateLimiter fixed-window accounting and fail-open behavior."""

import asyncio

import pytest

from lastfm_mcp.ratelimit import (
    HOUR_MS,
    MINUTE_MS,
    RATE_LIMIT_ERROR_CODE,
    RateLimitConfig,
    RateLimiter,
    parse_count,
)


def _window_ids(clock):
    now_ms = int(clock() * 1000)
    return now_ms // MINUTE_MS, now_ms // HOUR_MS


@pytest.mark.asyncio
async def test_allows_60_then_denies_61st(rate_limiter, clock):
    """Verify the default per-minute ceiling and the reported reset time."""
    for i in range(60):
        result = await rate_limiter.check_limit("rj")
        assert result.allowed, f"request {i + 1} should be allowed"

    denied = await rate_limiter.check_limit("rj")

    minute_id, _ = _window_ids(clock)
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset_time == (minute_id + 1) * MINUTE_MS
    assert denied.error_code == RATE_LIMIT_ERROR_CODE
    assert "60/60 requests per minute" in denied.error_message


@pytest.mark.asyncio
async def test_denied_request_does_not_consume_budget(rate_limiter, kv, clock):
    for _ in range(60):
        await rate_limiter.check_limit("rj")

    for _ in range(5):
        assert (await rate_limiter.check_limit("rj")).allowed is False

    minute_id, hour_id = _window_ids(clock)
    assert await kv.get(f"rl:rj:minute:{minute_id}") == "60"
    assert await kv.get(f"rl:rj:hour:{hour_id}") == "60"


@pytest.mark.asyncio
async def test_remaining_reports_tighter_window(kv, clock):
    limiter = RateLimiter(kv, RateLimitConfig(requests_per_minute=10, requests_per_hour=3), clock=clock)

    first = await limiter.check_limit("rj")

    assert first.allowed is True
    assert first.remaining == 2


@pytest.mark.asyncio
async def test_hour_limit_applies_across_minutes(kv, clock):
    limiter = RateLimiter(kv, RateLimitConfig(requests_per_minute=5, requests_per_hour=8), clock=clock)

    for _ in range(5):
        assert (await limiter.check_limit("rj")).allowed
    assert (await limiter.check_limit("rj")).allowed is False

    clock.advance(60)
    for _ in range(3):
        assert (await limiter.check_limit("rj")).allowed

    denied = await limiter.check_limit("rj")
    _, hour_id = _window_ids(clock)
    assert denied.allowed is False
    assert denied.reset_time == (hour_id + 1) * HOUR_MS
    assert "per hour" in denied.error_message


@pytest.mark.asyncio
async def test_new_minute_window_starts_fresh(rate_limiter, clock):
    for _ in range(60):
        await rate_limiter.check_limit("rj")
    assert (await rate_limiter.check_limit("rj")).allowed is False

    clock.advance(60)

    assert (await rate_limiter.check_limit("rj")).allowed is True


@pytest.mark.asyncio
async def test_identities_are_counted_separately(kv, clock):
    limiter = RateLimiter(kv, RateLimitConfig(requests_per_minute=1), clock=clock)

    assert (await limiter.check_limit("alice")).allowed
    assert (await limiter.check_limit("bob")).allowed
    assert (await limiter.check_limit("alice")).allowed is False


@pytest.mark.asyncio
async def test_counters_written_with_window_ttl(rate_limiter, mocker):
    put = mocker.spy(rate_limiter.kv, "put")

    await rate_limiter.check_limit("rj")

    ttls = sorted(call.kwargs["expiration_ttl"] for call in put.call_args_list)
    assert ttls == [60, 3600]


@pytest.mark.asyncio
async def test_fails_open_when_kv_raises(failing_kv, clock):
    """Verify a broken store never blocks requests."""
    limiter = RateLimiter(failing_kv, RateLimitConfig(requests_per_minute=1), clock=clock)

    for _ in range(5):
        result = await limiter.check_limit("rj")
        assert result.allowed is True

    assert failing_kv.calls > 0


@pytest.mark.asyncio
async def test_fails_open_when_write_fails(kv, clock, mocker):
    limiter = RateLimiter(kv, clock=clock)
    mocker.patch.object(kv, "put", side_effect=ConnectionError("KV write timeout"))

    assert (await limiter.check_limit("rj")).allowed is True


@pytest.mark.asyncio
async def test_invalid_counter_value_counts_as_zero(rate_limiter, kv, clock):
    minute_id, _ = _window_ids(clock)
    await kv.put(f"rl:rj:minute:{minute_id}", "not-a-number")

    result = await rate_limiter.check_limit("rj")

    assert result.allowed is True
    assert await kv.get(f"rl:rj:minute:{minute_id}") == "1"


@pytest.mark.parametrize(
    "raw,expected",
    [(None, 0), ("", 0), ("abc", 0), ("-4", 0), ("12", 12), (" 7 ", 7)],
)
def test_parse_count(raw, expected):
    assert parse_count(raw) == expected


@pytest.mark.asyncio
async def test_get_remaining_requests_is_read_only(rate_limiter, kv, clock):
    for _ in range(3):
        await rate_limiter.check_limit("rj")
    before = dict(kv._data)

    remaining = await rate_limiter.get_remaining_requests("rj")
    again = await rate_limiter.get_remaining_requests("rj")

    minute_id, hour_id = _window_ids(clock)
    assert remaining == again
    assert remaining.minute.remaining == 57
    assert remaining.minute.reset_time == (minute_id + 1) * MINUTE_MS
    assert remaining.hour.remaining == 997
    assert remaining.hour.reset_time == (hour_id + 1) * HOUR_MS
    assert dict(kv._data) == before


@pytest.mark.asyncio
async def test_get_remaining_requests_with_broken_kv(failing_kv, clock):
    limiter = RateLimiter(failing_kv, clock=clock)

    remaining = await limiter.get_remaining_requests("rj")

    assert remaining.minute.remaining == 60
    assert remaining.hour.remaining == 1000
    assert remaining.to_dict()["hour"]["remaining"] == 1000


@pytest.mark.asyncio
async def test_reset_user_limits_clears_only_that_identity(rate_limiter):
    await rate_limiter.check_limit("alice")
    await rate_limiter.check_limit("bob")

    removed = await rate_limiter.reset_user_limits("alice")

    assert removed == 2
    assert (await rate_limiter.get_remaining_requests("alice")).minute.remaining == 60
    assert (await rate_limiter.get_remaining_requests("bob")).minute.remaining == 59


@pytest.mark.asyncio
async def test_concurrent_checks_may_overshoot_but_stay_bounded(kv, clock):
    """Check-then-increment is not atomic; concurrent bursts read the same count."""
    limiter = RateLimiter(kv, RateLimitConfig(requests_per_minute=2), clock=clock)

    results = await asyncio.gather(*(limiter.check_limit("rj") for _ in range(4)))

    assert all(r.allowed for r in results[:2])
    minute_id, _ = _window_ids(clock)
    assert 1 <= int(await kv.get(f"rl:rj:minute:{minute_id}")) <= 2


def test_rate_limit_config_rejects_zero():
    with pytest.raises(ValueError):
        RateLimitConfig(requests_per_minute=0)
