# src/rexcore/routing/router.py
"""
Router for sub-task dispatch.

Combines the generic candidate tier (Candidate Builder) with the Strategy
Table's choice for the task's category, guarantees a strategic or failsafe
candidate whenever a failsafe provider is available, ranks everything with
a hard-gate scoring function and decides whether parallel fan-out is
allowed.

Routing is best-effort: ``route_task`` never raises. When a step fails the
decision is built from whatever candidates exist at that point and is
marked ``degraded`` with a warning per failed step.

Usage:
    router = Router(config, registry)
    decision = router.route_task(task, intent)
    decision.selected      # best candidate, or None
    decision.candidates    # full ranked list, best first
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..capabilities.registry import CapabilityRegistry
from ..config import RExConfig
from ..models import (
    STRATEGIC_REASON_PREFIX,
    Candidate,
    CandidateTier,
    Complexity,
    DecomposedTask,
    IntentProfile,
    PipelineContext,
    RoutingDecision,
)
from .candidates import build_candidates, candidate_from_provider
from .strategy import ModelExecutionPlan, StrategyTable

logger = logging.getLogger(__name__)

NON_STRATEGIC_PENALTY = 5000.0
DEFAULT_COST_ESTIMATE = 1.0
DEFAULT_LATENCY_MS = 200.0
LATENCY_DIVISOR = 100.0

PARALLEL_COMPLEXITIES = (Complexity.HIGH, Complexity.DEEP)

ScoringFunction = Callable[
    [Candidate, DecomposedTask, Optional[IntentProfile], Optional[PipelineContext]], float
]


# =============================================================================
# Scoring
# =============================================================================


def practical_score(
    candidate: Candidate,
    task: DecomposedTask,
    default_cost: float = DEFAULT_COST_ESTIMATE,
    default_latency_ms: float = DEFAULT_LATENCY_MS,
) -> float:
    """cost x estimated tokens + latency / 100."""
    cost = candidate.cost_estimate if candidate.cost_estimate is not None else default_cost
    latency = candidate.latency_estimate_ms if candidate.latency_estimate_ms is not None else default_latency_ms
    return cost * task.estimated_tokens() + latency / LATENCY_DIVISOR


def make_scoring(
    penalty: float = NON_STRATEGIC_PENALTY,
    default_cost: float = DEFAULT_COST_ESTIMATE,
    default_latency_ms: float = DEFAULT_LATENCY_MS,
) -> ScoringFunction:
    """
    Build a hard-gate scoring function. Lower is better.

    Generic candidates pay ``penalty`` on top of the practical term, so
    strategic, failsafe and secondary candidates always rank first and
    cost/latency only break ties within a tier.
    """

    def scoring(
        candidate: Candidate,
        task: DecomposedTask,
        intent: Optional[IntentProfile] = None,
        context: Optional[PipelineContext] = None,
    ) -> float:
        score = practical_score(candidate, task, default_cost, default_latency_ms)
        if not candidate.is_strategic:
            score += penalty
        return score

    return scoring


default_scoring: ScoringFunction = make_scoring()


# =============================================================================
# Helpers
# =============================================================================


def _as_complexity(value: object) -> Optional[Complexity]:
    if value is None:
        return None
    if isinstance(value, Complexity):
        return value
    try:
        return Complexity(value)
    except ValueError:
        return None


def resolve_complexity(
    intent: Optional[IntentProfile] = None,
    context: Optional[PipelineContext] = None,
) -> Optional[Complexity]:
    """
    Complexity of a request: request meta first, then the intent profile's
    own label, then an extracted ``complexity`` entity.
    """
    sources: List[object] = []
    if context is not None and context.request is not None:
        sources.append(context.request.meta.get("complexity"))
    if intent is not None:
        sources.append(intent.complexity)
        sources.append(intent.entities.get("complexity"))
    for value in sources:
        complexity = _as_complexity(value)
        if complexity is not None:
            return complexity
    return None


@dataclass
class RouterOptions:
    """Per-call router overrides."""

    scoring: Optional[ScoringFunction] = None
    max_candidates: Optional[int] = None


# =============================================================================
# Router
# =============================================================================


class Router:
    """
    Ranks candidates for one sub-task.

    No provider calls are made here.
    """

    def __init__(
        self,
        config: RExConfig,
        registry: CapabilityRegistry,
        strategy_table: Optional[StrategyTable] = None,
        scoring: Optional[ScoringFunction] = None,
    ):
        self.config = config
        self.registry = registry
        self.strategy_table = strategy_table or StrategyTable(
            fast_lane_min_confidence=config.routing.fast_lane_min_confidence
        )
        self.scoring = scoring or make_scoring(
            penalty=config.routing.non_strategic_penalty,
            default_cost=config.routing.default_cost_estimate,
            default_latency_ms=config.routing.default_latency_ms,
        )

    def route_task(
        self,
        task: DecomposedTask,
        intent: Optional[IntentProfile] = None,
        context: Optional[PipelineContext] = None,
        options: Optional[RouterOptions] = None,
    ) -> RoutingDecision:
        """
        Route a single task.

        Args:
            task: Sub-task to route.
            intent: Intent profile; its category selects the strategy.
            context: Pipeline context (request meta may carry complexity).
            options: Per-call scoring and candidate limit overrides.

        Returns:
            RoutingDecision with candidates sorted ascending by score.
        """
        opts = options or RouterOptions()
        scoring = opts.scoring or self.scoring
        max_candidates = opts.max_candidates if opts.max_candidates is not None else self.config.routing.max_candidates
        warnings: List[str] = []
        candidates: List[Candidate] = []
        complexity: Optional[Complexity] = None

        try:
            candidates = build_candidates(self.config, self.registry, max_candidates)
        except Exception as e:
            self._warn(warnings, task, f"Candidate building failed: {e}")

        try:
            complexity = resolve_complexity(intent, context)
        except Exception as e:
            self._warn(warnings, task, f"Complexity resolution failed: {e}")

        if intent is not None and intent.category:
            try:
                plan = self.strategy_table.select_strategy(
                    intent.category,
                    intent.confidence,
                    complexity or Complexity.MEDIUM,
                )
                candidates = self._apply_strategy(candidates, plan)
            except Exception as e:
                self._warn(warnings, task, f"Strategy lookup failed: {e}")

        if not any(c.is_strategic for c in candidates):
            try:
                candidates = self._apply_failsafe(candidates)
            except Exception as e:
                self._warn(warnings, task, f"Failsafe tagging failed: {e}")

        scored: List[Tuple[Candidate, float]] = []
        for candidate in candidates:
            try:
                score = float(scoring(candidate, task, intent, context))
            except Exception as e:
                self._warn(warnings, task, f"Scoring failed for '{candidate.provider}': {e}")
                score = float("inf")
            scored.append((candidate, score))
        scored.sort(key=lambda item: item[1])

        decision = RoutingDecision(
            task_id=task.id,
            candidates=[c for c, _ in scored],
            scores=[s for _, s in scored],
            parallel=self._decide_parallel(complexity),
            degraded=bool(warnings),
            warnings=warnings,
        )

        if decision.selected is not None:
            logger.debug(
                f"Task '{task.id}' routed to {decision.selected.provider}/{decision.selected.model} "
                f"({decision.selected.reason}); {len(decision.candidates)} candidates, parallel={decision.parallel}"
            )
        else:
            logger.warning(f"Task '{task.id}' has no routable candidates")
        if context is not None:
            context.log(
                "routed",
                task_id=task.id,
                selected=decision.selected.provider if decision.selected else None,
                degraded=decision.degraded,
            )
        return decision

    def _apply_strategy(self, candidates: List[Candidate], plan: ModelExecutionPlan) -> List[Candidate]:
        """Re-tag base candidates whose provider appears in the plan."""
        out: List[Candidate] = []
        for candidate in candidates:
            if candidate.provider == plan.primary.provider:
                candidate = candidate.model_copy(update={
                    "model": plan.primary.model,
                    "temperature": plan.primary.temperature,
                    "tier": CandidateTier.STRATEGIC,
                    "reason": f"{STRATEGIC_REASON_PREFIX}{plan.reason}",
                })
            else:
                choice = next((f for f in plan.fallbacks if f.provider == candidate.provider), None)
                if choice is not None:
                    candidate = candidate.model_copy(update={
                        "model": choice.model,
                        "temperature": plan.primary.temperature,
                        "tier": CandidateTier.STRATEGIC,
                        "reason": f"{STRATEGIC_REASON_PREFIX}fallback:{plan.category}",
                    })
            out.append(candidate)
        return out

    def _apply_failsafe(self, candidates: List[Candidate]) -> List[Candidate]:
        """
        Tag the configured failsafe providers so the list is never purely
        cost-ranked. A failsafe provider missing from the list (cut by the
        candidate limit) is appended when it is enabled and known.
        """
        out = list(candidates)
        for slot, name in self.config.routing.failsafe_providers().items():
            reason = f"{STRATEGIC_REASON_PREFIX}failsafe-{slot}"
            index = next((i for i, c in enumerate(out) if c.provider == name), None)
            if index is not None:
                out[index] = out[index].model_copy(update={"tier": CandidateTier.FAILSAFE, "reason": reason})
                continue
            provider = self.config.get_provider(name)
            if provider is not None and provider.enabled and self.registry.is_known_capability(name):
                out.append(candidate_from_provider(self.config, name, CandidateTier.FAILSAFE, reason))
        return out

    def _decide_parallel(self, complexity: Optional[Complexity]) -> bool:
        try:
            return bool(self.config.is_feature_enabled("multicore") and complexity in PARALLEL_COMPLEXITIES)
        except Exception as e:
            logger.debug(f"Parallel decision failed, defaulting to sequential: {e}")
            return False

    def _warn(self, warnings: List[str], task: DecomposedTask, message: str) -> None:
        logger.warning(f"Routing task '{task.id}': {message}")
        warnings.append(message)


__all__ = [
    "NON_STRATEGIC_PENALTY",
    "Router",
    "RouterOptions",
    "ScoringFunction",
    "default_scoring",
    "make_scoring",
    "practical_score",
    "resolve_complexity",
]
