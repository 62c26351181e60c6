# src/rexcore/accounting/cost_controller.py
"""
Per-request cost accounting.

A CostController is created for each request and records usage entries.
Per-user totals live in a UserUsageLedger that the caller owns and passes
in; the ledger only accumulates approximate totals for limit checks, so
interleaved updates from concurrent requests need no isolation.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import CostConfig
from ..models import CostBreakdownItem, CostReport

logger = logging.getLogger(__name__)

DEFAULT_PRICE_PER_1K: Dict[str, float] = {
    "gpt-4o-mini": 0.03,
    "gpt-4.1": 0.12,
    "gpt-4": 0.06,
    "gpt-3.5-turbo": 0.002,
}
FALLBACK_PRICE_PER_1K = 0.01
COST_PRECISION = 6


@dataclass
class UsageEntry:
    """Usage for one model call."""

    provider: str
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    cost_usd: Optional[float] = None

    @property
    def total_tokens(self) -> int:
        return (self.tokens_input or 0) + (self.tokens_output or 0)


@dataclass
class UserTotals:
    tokens: int = 0
    cost: float = 0.0


class UserUsageLedger:
    """Append-only per-user token and cost totals."""

    def __init__(self) -> None:
        self._totals: Dict[str, UserTotals] = {}
        self._lock = threading.Lock()

    def add(self, user_id: str, tokens: int, cost: float) -> UserTotals:
        with self._lock:
            totals = self._totals.setdefault(user_id, UserTotals())
            totals.tokens += tokens
            totals.cost += cost
            return UserTotals(totals.tokens, totals.cost)

    def get(self, user_id: str) -> UserTotals:
        with self._lock:
            totals = self._totals.get(user_id)
            return UserTotals(totals.tokens, totals.cost) if totals else UserTotals()

    def reset(self, user_id: str) -> None:
        with self._lock:
            self._totals.pop(user_id, None)


def estimate_cost(model: str, tokens: int, prices: Optional[Dict[str, float]] = None) -> float:
    table = DEFAULT_PRICE_PER_1K if prices is None else prices
    per_1k = table.get(model, FALLBACK_PRICE_PER_1K)
    return round(tokens / 1000.0 * per_1k, COST_PRECISION)


class CostController:
    """Collects usage for one request and checks request and user limits."""

    def __init__(
        self,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        limits: Optional[CostConfig] = None,
        ledger: Optional[UserUsageLedger] = None,
        prices: Optional[Dict[str, float]] = None,
    ):
        self.user_id = user_id
        self.request_id = request_id
        self.limits = limits or CostConfig()
        self.ledger = ledger
        self.prices = prices
        self.entries: List[UsageEntry] = []

    def add_usage(self, entry: UsageEntry) -> UsageEntry:
        """Record usage; estimates ``cost_usd`` from the price table when missing."""
        if entry.cost_usd is None:
            entry.cost_usd = estimate_cost(entry.model, entry.total_tokens, self.prices)
        self.entries.append(entry)
        if self.user_id and self.ledger is not None:
            self.ledger.add(self.user_id, entry.total_tokens, entry.cost_usd)
        return entry

    def get_report(self) -> CostReport:
        tokens_input = sum(e.tokens_input or 0 for e in self.entries)
        tokens_output = sum(e.tokens_output or 0 for e in self.entries)
        return CostReport(
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            total_tokens=tokens_input + tokens_output,
            estimated_cost=sum(e.cost_usd or 0.0 for e in self.entries),
            breakdown=[
                CostBreakdownItem(provider=e.provider, model=e.model, tokens=e.total_tokens, cost=e.cost_usd or 0.0)
                for e in self.entries
            ],
        )

    def check_limits(self) -> List[str]:
        """Human-readable limit violations; empty when within limits."""
        issues: List[str] = []
        report = self.get_report()
        limits = self.limits
        if limits.request_token_limit and report.total_tokens > limits.request_token_limit:
            issues.append(f"request token limit exceeded: {report.total_tokens} > {limits.request_token_limit}")
        if limits.request_cost_limit_usd and report.estimated_cost > limits.request_cost_limit_usd:
            issues.append(f"request cost limit exceeded: {report.estimated_cost:.6f} > {limits.request_cost_limit_usd}")
        if self.user_id and self.ledger is not None:
            totals = self.ledger.get(self.user_id)
            if limits.user_token_limit and totals.tokens > limits.user_token_limit:
                issues.append(f"user token limit exceeded: {totals.tokens} > {limits.user_token_limit}")
            if limits.user_cost_limit_usd and totals.cost > limits.user_cost_limit_usd:
                issues.append(f"user cost limit exceeded: {totals.cost:.6f} > {limits.user_cost_limit_usd}")
        for issue in issues:
            logger.warning(f"Request '{self.request_id}': {issue}")
        return issues
