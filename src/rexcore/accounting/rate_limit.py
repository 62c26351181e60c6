# src/rexcore/accounting/rate_limit.py
"""
Per-client token bucket rate limiting.

Each client key owns a bucket of ``max_tokens`` that refills continuously
at ``max_tokens`` per ``refill_seconds``. Buckets belong to the limiter
instance; there is no module-level state. A bucket left idle for
``refill_seconds`` is full again, so it is dropped on the next sweep
(at most one sweep per ``refill_seconds``).
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..config import RateLimitConfig
from ..exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    tokens: float
    last_refill: float


class TokenBucketRateLimiter:
    """Token bucket per client key."""

    def __init__(
        self,
        max_tokens: int = 10,
        refill_seconds: float = 60.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        if max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if refill_seconds <= 0:
            raise ValueError("refill_seconds must be positive")
        self.max_tokens = max_tokens
        self.refill_seconds = refill_seconds
        self._clock = clock or time.monotonic
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        self._last_sweep = self._clock()

    @classmethod
    def from_config(cls, config: RateLimitConfig, clock: Optional[Callable[[], float]] = None) -> "TokenBucketRateLimiter":
        return cls(max_tokens=config.max_tokens, refill_seconds=config.refill_seconds, clock=clock)

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def _sweep(self, now: float) -> None:
        # idle for refill_seconds means full, same as a fresh bucket
        if now - self._last_sweep < self.refill_seconds:
            return
        self._last_sweep = now
        stale = [key for key, bucket in self._buckets.items() if now - bucket.last_refill >= self.refill_seconds]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} idle rate limit bucket(s)")

    def _refill(self, key: str) -> _Bucket:
        now = self._clock()
        self._sweep(now)
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=float(self.max_tokens), last_refill=now)
            self._buckets[key] = bucket
            return bucket
        elapsed = max(0.0, now - bucket.last_refill)
        bucket.tokens = min(float(self.max_tokens), bucket.tokens + elapsed / self.refill_seconds * self.max_tokens)
        bucket.last_refill = now
        return bucket

    def try_acquire(self, key: str) -> bool:
        """Take one token for ``key``; False when the bucket is empty."""
        with self._lock:
            bucket = self._refill(key)
            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True
        logger.info(f"Rate limit exceeded for client '{key}'")
        return False

    def acquire(self, key: str) -> None:
        """
        Raises:
            RateLimitExceededError: When the bucket for ``key`` is empty.
        """
        if not self.try_acquire(key):
            raise RateLimitExceededError(key)

    def remaining(self, key: str) -> float:
        with self._lock:
            return self._refill(key).tokens

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)
