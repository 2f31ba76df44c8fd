"""Tests for ghardaar/security/ratelimit.py — fixed-window rate limiter."""

import asyncio
from unittest.mock import patch

import pytest

from ghardaar.security.ratelimit import (
    DEFAULT_CONFIG,
    UNKNOWN_CLIENT,
    InMemoryRateLimitStore,
    RateLimitConfig,
    RateLimiter,
    check_rate_limit,
    get_client_identifier,
    get_rate_limit_headers,
    get_rate_limiter,
    run_periodic_sweep,
)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(store=InMemoryRateLimitStore(), clock=clock)


CONFIG = RateLimitConfig(interval_ms=60_000, max_requests=5)


class TestCheck:

    def test_first_request(self, limiter):
        result = limiter.check("1.1.1.1", CONFIG)
        assert result.limited is False
        assert result.remaining == 4
        assert result.reset_in_ms == 60_000

    def test_exactly_n_requests_allowed(self, limiter):
        results = [limiter.check("1.1.1.1", CONFIG) for _ in range(5)]
        assert all(not r.limited for r in results)
        assert [r.remaining for r in results] == [4, 3, 2, 1, 0]

    def test_n_plus_one_is_limited(self, limiter, clock):
        for _ in range(5):
            limiter.check("1.1.1.1", CONFIG)
        clock.advance(15_000)
        result = limiter.check("1.1.1.1", CONFIG)
        assert result.limited is True
        assert result.remaining == 0
        assert result.reset_in_ms == 45_000

    def test_reset_in_counts_down_within_window(self, limiter, clock):
        limiter.check("1.1.1.1", CONFIG)
        clock.advance(10_000)
        result = limiter.check("1.1.1.1", CONFIG)
        assert result.remaining == 3
        assert result.reset_in_ms == 50_000

    def test_full_refill_after_interval(self, limiter, clock):
        for _ in range(8):  # 5 allowed, 3 limited
            limiter.check("1.1.1.1", CONFIG)
        clock.advance(60_000)
        result = limiter.check("1.1.1.1", CONFIG)
        assert result.limited is False
        assert result.remaining == 4
        assert result.reset_in_ms == 60_000

    def test_window_measured_from_first_request(self, limiter, clock):
        """Limited calls do not move the window start."""
        for _ in range(5):
            limiter.check("1.1.1.1", CONFIG)
        clock.advance(59_999)
        assert limiter.check("1.1.1.1", CONFIG).limited is True
        clock.advance(1)
        assert limiter.check("1.1.1.1", CONFIG).limited is False

    def test_burst_across_window_boundary(self, limiter, clock):
        """Fixed window: a full burst at the end of one window and another at the start of the next."""
        clock.advance(0)
        limiter.check("1.1.1.1", CONFIG)
        clock.advance(59_000)
        late = [limiter.check("1.1.1.1", CONFIG) for _ in range(4)]
        clock.advance(1_000)
        early = [limiter.check("1.1.1.1", CONFIG) for _ in range(5)]
        assert not any(r.limited for r in late + early)

    def test_identifiers_independent(self, limiter):
        for _ in range(5):
            limiter.check("a", CONFIG)
        assert limiter.check("a", CONFIG).limited is True
        assert limiter.check("b", CONFIG).limited is False

    def test_tokens_never_negative(self, limiter):
        for _ in range(20):
            limiter.check("a", CONFIG)
        assert limiter.store.get("a").tokens == 0

    def test_single_request_capacity(self, limiter):
        config = RateLimitConfig(interval_ms=1000, max_requests=1)
        assert limiter.check("a", config).remaining == 0
        assert limiter.check("a", config).limited is True

    def test_default_config(self, limiter):
        assert DEFAULT_CONFIG.max_requests == 10
        assert DEFAULT_CONFIG.interval_ms == 60_000
        assert limiter.check("a").remaining == 9


class TestSweep:

    def test_removes_idle_entries_only(self, limiter, clock):
        limiter.check("old", CONFIG)
        clock.advance(9 * 60_000)
        limiter.check("recent", CONFIG)
        clock.advance(2 * 60_000)  # old idle 11 min, recent idle 2 min

        removed = limiter.sweep(max_age_ms=10 * 60_000)

        assert removed == 1
        assert limiter.store.get("old") is None
        assert limiter.store.get("recent") is not None

    def test_swept_entry_starts_fresh(self, limiter, clock):
        for _ in range(5):
            limiter.check("a", CONFIG)
        clock.advance(11 * 60_000)
        limiter.sweep()
        assert limiter.check("a", CONFIG).remaining == 4

    async def test_periodic_sweep_task(self, limiter, clock):
        limiter.check("a", CONFIG)
        clock.advance(11 * 60_000)
        task = asyncio.create_task(run_periodic_sweep(limiter, interval_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(limiter.store) == 0


class TestDefaultLimiter:

    def test_check_rate_limit_uses_shared_store(self):
        check_rate_limit("shared", CONFIG)
        assert get_rate_limiter().store.get("shared").tokens == 4

    def test_default_clock_is_monotonic(self):
        with patch("ghardaar.security.ratelimit.time.monotonic", return_value=1000.0):
            check_rate_limit("m", CONFIG)
        with patch("ghardaar.security.ratelimit.time.monotonic", return_value=1061.0):
            result = check_rate_limit("m", CONFIG)
        assert result.remaining == 4
        assert result.reset_in_ms == 60_000


class TestClientIdentifier:

    def test_forwarded_for_first_entry(self):
        headers = {"x-forwarded-for": " 203.0.113.7 , 10.0.0.1", "x-real-ip": "198.51.100.1"}
        assert get_client_identifier(headers) == "203.0.113.7"

    def test_real_ip_when_no_forwarded_for(self):
        assert get_client_identifier({"x-real-ip": "198.51.100.1"}) == "198.51.100.1"

    def test_empty_forwarded_for_falls_through(self):
        assert get_client_identifier({"x-forwarded-for": "", "x-real-ip": "198.51.100.1"}) == "198.51.100.1"

    def test_fallback_sentinel(self):
        assert get_client_identifier({}) == UNKNOWN_CLIENT == "unknown-client"


class TestHeaders:

    def test_values(self):
        headers = get_rate_limit_headers(remaining=0, reset_in_ms=45_001, limit=10)
        assert headers == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": "46",
        }

    def test_whole_seconds_not_rounded_up(self):
        assert get_rate_limit_headers(3, 60_000)["X-RateLimit-Reset"] == "60"

    def test_default_limit(self):
        assert get_rate_limit_headers(3, 1000)["X-RateLimit-Limit"] == "10"
