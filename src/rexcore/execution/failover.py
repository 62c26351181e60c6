# src/rexcore/execution/failover.py
"""
Failover Executor.

Runs a prompt against an ordered list of capabilities. Each capability gets
a bounded number of attempts (from the execution depth or a flat retry
count) with backoff between failed attempts. Results shorter than the
partial threshold, or flagged ``meta["partial"]``, are kept aside; if no
full result arrives, the partial fragments are merged into one composite
result.

Provider failures never escape: they are recorded in the outcome's
``errors``. The only exception raised is FailoverConfigError for an empty
capability list.

Usage:
    executor = FailoverExecutor()
    outcome = await executor.execute_with_failover(
        [primary, fallback], "Summarize this", {"max_tokens": 256},
        FailoverOptions(depth="normal"),
    )
    if outcome.result is not None:
        print(outcome.provider_id, outcome.result.text)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from ..capabilities.base import Capability, ConfigLike, coerce_config, normalize_result
from ..config.rex_config import FailoverConfig
from ..exceptions import CapabilityTimeoutError, FailoverConfigError
from ..models import ExecuteConfig, ExecuteResult, ExecutionDepth
from .backoff import DEFAULT_BACKOFF_BASE_MS, DEFAULT_MAX_BACKOFF_MS, BackoffStrategy, compute_delay

logger = logging.getLogger(__name__)

PARTIAL_SEPARATOR = "\n\n---\n\n"
DEFAULT_PARTIAL_THRESHOLD_CHARS = 20

DEPTH_RETRY_BUDGET: Dict[ExecutionDepth, int] = {
    ExecutionDepth.FAST: 0,
    ExecutionDepth.NORMAL: 1,
    ExecutionDepth.DEEP: 3,
}

SleepFunction = Callable[[float], Awaitable[Any]]


# =============================================================================
# Options and outcome
# =============================================================================


class FailoverOptions(BaseModel):
    """Per-call failover settings."""

    backoff: BackoffStrategy = Field(default=BackoffStrategy.EXPONENTIAL)
    backoff_base_ms: float = Field(default=DEFAULT_BACKOFF_BASE_MS, ge=0)
    max_backoff_ms: float = Field(default=DEFAULT_MAX_BACKOFF_MS, ge=0)
    partial_threshold_chars: int = Field(default=DEFAULT_PARTIAL_THRESHOLD_CHARS, ge=0)
    allow_partial: bool = Field(
        default=False,
        description="Accept a partial from the final attempt of the last capability instead of continuing to merge.",
    )
    depth: Optional[ExecutionDepth] = Field(default=None, description="Overrides retries when set.")
    retries: int = Field(default=0, ge=0, description="Flat retry count per capability.")
    per_attempt_timeout_ms: Optional[int] = Field(default=None, gt=0)

    @classmethod
    def from_config(cls, config: FailoverConfig, **overrides: Any) -> "FailoverOptions":
        data: Dict[str, Any] = {
            "backoff": config.backoff,
            "backoff_base_ms": config.backoff_base_ms,
            "max_backoff_ms": config.max_backoff_ms,
            "partial_threshold_chars": config.partial_threshold_chars,
            "allow_partial": config.allow_partial,
            "retries": config.retries,
            "per_attempt_timeout_ms": config.per_attempt_timeout_ms,
        }
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)

    def retry_budget(self) -> int:
        """Retries per capability: the depth budget when a depth is set, else ``retries``."""
        if self.depth is not None:
            return DEPTH_RETRY_BUDGET[self.depth]
        return self.retries


@dataclass
class AttemptError:
    """One failed attempt."""

    capability_id: str
    attempt: int
    error: BaseException

    def describe(self) -> str:
        return f"{self.capability_id}#{self.attempt}: {type(self.error).__name__}: {self.error}"


@dataclass
class FailoverOutcome:
    """
    Terminal state of one failover execution.

    ``result`` is None only when every attempt failed and no partial
    fragment was collected.
    """

    result: Optional[ExecuteResult]
    provider_id: Optional[str] = None
    used_providers: List[str] = field(default_factory=list)
    partial: bool = False
    errors: List[AttemptError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.result is not None


# =============================================================================
# Helpers
# =============================================================================


def is_partial_result(result: ExecuteResult, threshold_chars: int) -> bool:
    return result.flagged_partial or len(result.text or "") < threshold_chars


def merge_partials(partials: Sequence[Tuple[str, ExecuteResult]]) -> ExecuteResult:
    """Concatenate partial fragments with a visible separator and sum token usage."""
    text = PARTIAL_SEPARATOR.join(r.text for _, r in partials if r.text)
    tokens = sum(r.tokens_used or 0 for _, r in partials)
    return ExecuteResult(
        text=text,
        tokens_used=tokens,
        meta={
            "partial": True,
            "sources": [{"provider": provider, "meta": r.meta} for provider, r in partials],
        },
    )


def _retrieve_late_exception(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Timed-out capability call finished later with {type(exc).__name__}: {exc}")


# =============================================================================
# Executor
# =============================================================================


class FailoverExecutor:
    """
    Executes prompts with ordered failover across capabilities.

    Capabilities are tried strictly in the given order and a capability's
    retries are exhausted before moving on. The executor holds only
    counters; it is safe to share across concurrent dispatches.
    """

    def __init__(self, sleep: Optional[SleepFunction] = None):
        """
        Args:
            sleep: Awaitable taking seconds, used for backoff (default asyncio.sleep).
        """
        self._sleep: SleepFunction = sleep or asyncio.sleep
        self._stats: Dict[str, int] = {
            "total_executions": 0,
            "successful_primary": 0,
            "successful_failover": 0,
            "partial_results": 0,
            "all_failed": 0,
            "total_attempts": 0,
            "timeouts": 0,
        }

    async def execute_with_failover(
        self,
        capabilities: Sequence[Capability],
        prompt: str,
        config: ConfigLike = None,
        options: Union[FailoverOptions, Mapping[str, Any], None] = None,
    ) -> FailoverOutcome:
        """
        Run ``prompt`` with failover.

        Args:
            capabilities: Ordered capabilities, most preferred first.
            prompt: Prompt text.
            config: ExecuteConfig (or mapping) passed to every capability.
            options: FailoverOptions (or mapping).

        Returns:
            FailoverOutcome.

        Raises:
            FailoverConfigError: If ``capabilities`` is empty.
        """
        if not capabilities:
            raise FailoverConfigError()

        opts = options if isinstance(options, FailoverOptions) else FailoverOptions(**(options or {}))
        exec_config: ExecuteConfig = coerce_config(config)
        attempts = opts.retry_budget() + 1
        timeout_ms = opts.per_attempt_timeout_ms or exec_config.timeout_ms

        self._stats["total_executions"] += 1
        errors: List[AttemptError] = []
        used: List[str] = []
        partials: List[Tuple[str, ExecuteResult]] = []
        last_index = len(capabilities) - 1

        for index, capability in enumerate(capabilities):
            capability_id = capability.id
            used.append(capability_id)
            partial_recorded = False

            for attempt in range(1, attempts + 1):
                is_final = index == last_index and attempt == attempts
                self._stats["total_attempts"] += 1
                try:
                    result = await self._attempt(capability, prompt, exec_config, timeout_ms)
                except Exception as e:
                    errors.append(AttemptError(capability_id, attempt, e))
                    logger.warning(f"Capability '{capability_id}' attempt {attempt}/{attempts} failed: {type(e).__name__}: {e}")
                    if attempt < attempts:
                        delay_ms = compute_delay(attempt, opts.backoff, opts.backoff_base_ms, opts.max_backoff_ms)
                        await self._sleep(delay_ms / 1000.0)
                    continue

                if not is_partial_result(result, opts.partial_threshold_chars):
                    self._stats["successful_primary" if index == 0 else "successful_failover"] += 1
                    logger.debug(f"Capability '{capability_id}' produced a full result on attempt {attempt}")
                    return FailoverOutcome(
                        result=result,
                        provider_id=capability_id,
                        used_providers=used,
                        partial=False,
                        errors=errors,
                    )

                logger.info(f"Capability '{capability_id}' returned a partial result ({len(result.text)} chars)")
                fragments = partials
                if not partial_recorded:
                    partials.append((capability_id, result))
                    partial_recorded = True
                else:
                    fragments = partials + [(capability_id, result)]

                if is_final and opts.allow_partial:
                    self._stats["partial_results"] += 1
                    merged = merge_partials(fragments)
                    merged.meta["accepted_partial"] = True
                    return FailoverOutcome(
                        result=merged,
                        provider_id=capability_id,
                        used_providers=used,
                        partial=True,
                        errors=errors,
                    )

        if partials:
            self._stats["partial_results"] += 1
            logger.info(f"No full result; merging {len(partials)} partial fragment(s)")
            return FailoverOutcome(
                result=merge_partials(partials),
                provider_id=partials[0][0],
                used_providers=used,
                partial=True,
                errors=errors,
            )

        self._stats["all_failed"] += 1
        logger.error(f"All capabilities failed: {used}")
        return FailoverOutcome(result=None, provider_id=None, used_providers=used, partial=False, errors=errors)

    async def _attempt(
        self,
        capability: Capability,
        prompt: str,
        config: ExecuteConfig,
        timeout_ms: Optional[int],
    ) -> ExecuteResult:
        """One call, bounded by ``timeout_ms``; a timed-out call keeps running but is no longer awaited."""
        if not timeout_ms:
            return normalize_result(await capability.execute(prompt, config), capability.id)

        task = asyncio.ensure_future(capability.execute(prompt, config))
        try:
            raw = await asyncio.wait_for(asyncio.shield(task), timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            self._stats["timeouts"] += 1
            task.add_done_callback(_retrieve_late_exception)
            raise CapabilityTimeoutError(capability.id, timeout_ms)
        return normalize_result(raw, capability.id)

    def get_statistics(self) -> Dict[str, Any]:
        """Counters plus success/failure rates."""
        total = self._stats["total_executions"]
        return {
            **self._stats,
            "primary_success_rate": (self._stats["successful_primary"] / total if total > 0 else 0.0),
            "failover_rate": (self._stats["successful_failover"] / total if total > 0 else 0.0),
            "failure_rate": (self._stats["all_failed"] / total if total > 0 else 0.0),
        }


async def execute_with_failover(
    capabilities: Sequence[Capability],
    prompt: str,
    config: ConfigLike = None,
    options: Union[FailoverOptions, Mapping[str, Any], None] = None,
    sleep: Optional[SleepFunction] = None,
) -> FailoverOutcome:
    """Convenience wrapper around a one-off FailoverExecutor."""
    return await FailoverExecutor(sleep=sleep).execute_with_failover(capabilities, prompt, config, options)


__all__ = [
    "AttemptError",
    "DEPTH_RETRY_BUDGET",
    "FailoverExecutor",
    "FailoverOptions",
    "FailoverOutcome",
    "PARTIAL_SEPARATOR",
    "execute_with_failover",
    "is_partial_result",
    "merge_partials",
]
