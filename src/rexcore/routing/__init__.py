# src/rexcore/routing/__init__.py
"""
Routing package for rexcore.

Builds candidates from provider configuration, looks up category
strategies, ranks candidates per sub-task and provides the secondary
quality/cost/latency tier.
"""

from .candidates import build_candidates, candidate_from_provider
from .router import (
    NON_STRATEGIC_PENALTY,
    Router,
    RouterOptions,
    ScoringFunction,
    default_scoring,
    make_scoring,
    practical_score,
    resolve_complexity,
)
from .secondary import (
    INTENT_WEIGHTS,
    SECONDARY_REASON,
    QualityWeights,
    SecondarySelector,
    score_provider,
)
from .strategy import (
    CATEGORY_STRATEGY,
    FAST_LANE_MIN_CONFIDENCE,
    ModelChoice,
    ModelExecutionPlan,
    StrategyEntry,
    StrategyTable,
    compute_temperature,
    resolve_category,
)

__all__ = [
    "CATEGORY_STRATEGY",
    "FAST_LANE_MIN_CONFIDENCE",
    "INTENT_WEIGHTS",
    "ModelChoice",
    "ModelExecutionPlan",
    "NON_STRATEGIC_PENALTY",
    "QualityWeights",
    "Router",
    "RouterOptions",
    "SECONDARY_REASON",
    "ScoringFunction",
    "SecondarySelector",
    "StrategyEntry",
    "StrategyTable",
    "build_candidates",
    "candidate_from_provider",
    "compute_temperature",
    "default_scoring",
    "make_scoring",
    "practical_score",
    "resolve_category",
    "resolve_complexity",
    "score_provider",
]
