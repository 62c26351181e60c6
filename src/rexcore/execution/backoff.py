# src/rexcore/execution/backoff.py
"""
Retry backoff delays.

    exponential: base * 2^attempt
    linear:      base * attempt
    constant:    base

Every delay is capped at ``max_ms``. ``attempt`` is the 1-based number of
the attempt that just failed.
"""

from typing import Union

from ..config.rex_config import BackoffStrategy

DEFAULT_BACKOFF_BASE_MS = 200
DEFAULT_MAX_BACKOFF_MS = 5000


def compute_delay(
    attempt: int,
    strategy: Union[BackoffStrategy, str] = BackoffStrategy.EXPONENTIAL,
    base_ms: float = DEFAULT_BACKOFF_BASE_MS,
    max_ms: float = DEFAULT_MAX_BACKOFF_MS,
) -> float:
    """Delay in milliseconds before the next attempt."""
    strategy = BackoffStrategy(strategy)
    if strategy is BackoffStrategy.EXPONENTIAL:
        delay = base_ms * (2 ** attempt)
    elif strategy is BackoffStrategy.LINEAR:
        delay = base_ms * attempt
    else:
        delay = base_ms
    return float(max(0, min(delay, max_ms)))


__all__ = ["BackoffStrategy", "compute_delay", "DEFAULT_BACKOFF_BASE_MS", "DEFAULT_MAX_BACKOFF_MS"]
