# tests/accounting/test_rate_limit.py
"""
Tests for the per-client token bucket.
"""

import pytest

from rexcore.accounting import TokenBucketRateLimiter
from rexcore.config import RateLimitConfig
from rexcore.exceptions import RateLimitExceededError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestTokenBucket:
    """Bucket consumption and refill."""

    def test_new_bucket_starts_full(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=3, refill_seconds=60, clock=clock)

        assert limiter.remaining("10.0.0.1") == 3

    def test_exhaustion(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=2, refill_seconds=60, clock=clock)

        assert limiter.try_acquire("ip") is True
        assert limiter.try_acquire("ip") is True
        assert limiter.try_acquire("ip") is False

    def test_keys_are_independent(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=1, refill_seconds=60, clock=clock)

        assert limiter.try_acquire("a") is True
        assert limiter.try_acquire("b") is True
        assert limiter.try_acquire("a") is False

    def test_refill_over_time(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=2, refill_seconds=60, clock=clock)
        limiter.try_acquire("ip")
        limiter.try_acquire("ip")

        clock.now += 30

        assert limiter.try_acquire("ip") is True
        assert limiter.try_acquire("ip") is False

    def test_refill_is_capped(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=2, refill_seconds=60, clock=clock)
        limiter.try_acquire("ip")

        clock.now += 3600

        assert limiter.remaining("ip") == 2

    def test_acquire_raises(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=1, refill_seconds=60, clock=clock)
        limiter.acquire("ip")

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.acquire("ip")
        assert exc_info.value.key == "ip"

    def test_reset(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=1, refill_seconds=60, clock=clock)
        limiter.try_acquire("ip")

        limiter.reset("ip")

        assert limiter.try_acquire("ip") is True

    def test_from_config(self, clock):
        limiter = TokenBucketRateLimiter.from_config(RateLimitConfig(max_tokens=5, refill_seconds=10), clock=clock)

        assert limiter.max_tokens == 5
        assert limiter.refill_seconds == 10

    @pytest.mark.parametrize("max_tokens,refill_seconds", [(0, 60), (5, 0)])
    def test_invalid_arguments(self, max_tokens, refill_seconds):
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(max_tokens=max_tokens, refill_seconds=refill_seconds)


class TestIdleBuckets:
    """Buckets of clients that went quiet are dropped."""

    def test_idle_buckets_dropped(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=2, refill_seconds=60, clock=clock)
        limiter.try_acquire("a")
        limiter.try_acquire("b")
        assert limiter.bucket_count == 2

        clock.now += 61
        limiter.try_acquire("c")

        assert limiter.bucket_count == 1
        assert limiter.remaining("a") == 2

    def test_recent_buckets_kept(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=2, refill_seconds=60, clock=clock)
        limiter.try_acquire("a")

        clock.now += 61
        limiter.try_acquire("b")
        limiter.try_acquire("b")
        clock.now += 30
        limiter.try_acquire("c")

        assert limiter.bucket_count == 2
        # b is still half empty, not reset by a sweep
        assert limiter.remaining("b") == pytest.approx(1.0)

    def test_sweep_at_most_once_per_window(self, clock):
        limiter = TokenBucketRateLimiter(max_tokens=1, refill_seconds=60, clock=clock)
        limiter.try_acquire("a")

        clock.now += 30
        limiter.try_acquire("b")
        clock.now += 31
        limiter.try_acquire("c")

        # first sweep ran at t=61: a (idle 61s) dropped, b (idle 31s) kept
        assert limiter.bucket_count == 2
        assert limiter.try_acquire("b") is False
