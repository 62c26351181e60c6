# src/rexcore/routing/secondary.py
"""
Secondary (quality/cost/latency) selector.

Last-resort tier used when every strategic candidate has failed at
execution time. Ranks the remaining enabled providers by a weighted
quality/cost/latency score keyed by intent category. Higher scores are
better here, the inverse of the router's convention.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..capabilities.registry import CapabilityRegistry
from ..config import RExConfig
from ..models import (
    STRATEGIC_REASON_PREFIX,
    Candidate,
    CandidateTier,
    DecomposedTask,
    IntentProfile,
    PipelineContext,
)

logger = logging.getLogger(__name__)

SECONDARY_REASON = f"{STRATEGIC_REASON_PREFIX}secondary"

NEUTRAL_QUALITY = 0.7
NEUTRAL_COST = 1.0
NEUTRAL_LATENCY_MS = 300.0


@dataclass(frozen=True)
class QualityWeights:
    quality: float
    cost: float
    latency: float


INTENT_WEIGHTS: Dict[str, QualityWeights] = {
    "creative": QualityWeights(quality=0.55, cost=0.2, latency=0.25),
    "emotional": QualityWeights(quality=0.55, cost=0.25, latency=0.2),
    "branding": QualityWeights(quality=0.6, cost=0.2, latency=0.2),
    "informative": QualityWeights(quality=0.5, cost=0.3, latency=0.2),
    "code": QualityWeights(quality=0.6, cost=0.25, latency=0.15),
    "math": QualityWeights(quality=0.65, cost=0.2, latency=0.15),
    "vision": QualityWeights(quality=0.55, cost=0.2, latency=0.25),
    "fast": QualityWeights(quality=0.4, cost=0.4, latency=0.2),
    "other": QualityWeights(quality=0.5, cost=0.25, latency=0.25),
}


def score_provider(quality: float, cost: float, latency_ms: float, weights: QualityWeights) -> float:
    """quality*Wq + (1/cost)*Wc + (1/latency)*Wl; non-positive cost or latency use neutral values."""
    safe_cost = cost if cost > 0 else NEUTRAL_COST
    safe_latency = latency_ms if latency_ms > 0 else NEUTRAL_LATENCY_MS
    return quality * weights.quality + (1.0 / safe_cost) * weights.cost + (1.0 / safe_latency) * weights.latency


def weights_for(category: Optional[str]) -> QualityWeights:
    key = (category or "").strip().lower()
    return INTENT_WEIGHTS.get(key, INTENT_WEIGHTS["other"])


class SecondarySelector:
    """Ranks enabled, known, non-excluded providers by weighted quality/cost/latency."""

    def __init__(self, config: RExConfig, registry: CapabilityRegistry):
        self.config = config
        self.registry = registry

    def select_by_quality_cost_latency(
        self,
        task: Optional[DecomposedTask] = None,
        intent: Optional[IntentProfile] = None,
        context: Optional[PipelineContext] = None,
        excluded_provider_ids: Iterable[str] = (),
    ) -> List[Candidate]:
        """
        Returns:
            Candidates sorted by descending score, tagged ``tier=SECONDARY``
            and reason ``strategic:secondary``.
        """
        excluded = {p.strip().lower() for p in excluded_provider_ids}
        weights = weights_for(intent.category if intent else None)

        scored = []
        for provider in self.config.enabled_providers():
            if provider.name in excluded or not self.registry.is_known_capability(provider.name):
                continue
            meta = provider.meta
            quality = meta.quality_score if meta.quality_score is not None else NEUTRAL_QUALITY
            cost = meta.cost_per_1k if meta.cost_per_1k is not None else NEUTRAL_COST
            latency = meta.latency_ms if meta.latency_ms is not None else NEUTRAL_LATENCY_MS
            candidate = Candidate(
                provider=provider.name,
                model="default",
                temperature=meta.default_temperature,
                cost_estimate=cost,
                latency_estimate_ms=latency,
                quality_score=quality,
                tier=CandidateTier.SECONDARY,
                reason=SECONDARY_REASON,
            )
            scored.append((candidate, score_provider(quality, cost, latency, weights)))

        scored.sort(key=lambda item: item[1], reverse=True)
        if task is not None:
            logger.debug(f"Secondary tier for task '{task.id}': {[c.provider for c, _ in scored]}")
        return [c for c, _ in scored]
