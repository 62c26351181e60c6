# src/rexcore/accounting/__init__.py
"""
Accounting package for rexcore: per-request cost tracking, per-user usage
totals and per-client rate limiting.
"""

from .cost_controller import (
    DEFAULT_PRICE_PER_1K,
    FALLBACK_PRICE_PER_1K,
    CostController,
    UsageEntry,
    UserTotals,
    UserUsageLedger,
    estimate_cost,
)
from .rate_limit import TokenBucketRateLimiter

__all__ = [
    "DEFAULT_PRICE_PER_1K",
    "FALLBACK_PRICE_PER_1K",
    "CostController",
    "TokenBucketRateLimiter",
    "UsageEntry",
    "UserTotals",
    "UserUsageLedger",
    "estimate_cost",
]
