# src/rexcore/routing/strategy.py
"""
Strategy Table.

Per-category lookup of an ordered list of (provider, model alias) pairs, a
base sampling temperature and a human-readable rationale. The selected
temperature is adjusted by task complexity and classifier confidence.

The table is pure: no model calls, no provider imports, no I/O.

Usage:
    table = StrategyTable()
    plan = table.select_strategy("code", confidence=0.9, complexity="high")
    plan.primary      # ModelChoice(provider='openai', model='gpt-4o', temperature=0.0)
    plan.fallbacks    # deepseek, qwen with the same temperature
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple, Union

from ..models import Complexity

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other"
FAST_CATEGORY = "fast"

HIGH_COMPLEXITY_DELTA = 0.15
LOW_COMPLEXITY_DELTA = 0.05
HIGH_CONFIDENCE_THRESHOLD = 0.85
HIGH_CONFIDENCE_DELTA = 0.15
LOW_CONFIDENCE_THRESHOLD = 0.4
LOW_CONFIDENCE_DELTA = 0.15
FAST_LANE_MIN_CONFIDENCE = 0.9

ComplexityLike = Union[Complexity, str, None]


# =============================================================================
# Data models
# =============================================================================


@dataclass(frozen=True)
class ModelChoice:
    """One (provider, model alias) pair with its sampling temperature."""

    provider: str
    model: str
    temperature: float


@dataclass(frozen=True)
class StrategyEntry:
    """Ordered models for a category; the first is primary."""

    ordered_models: Tuple[Tuple[str, str], ...]
    base_temperature: float
    rationale: str


@dataclass
class ModelExecutionPlan:
    """Result of a strategy lookup."""

    primary: ModelChoice
    fallbacks: List[ModelChoice] = field(default_factory=list)
    reason: str = ""
    category: str = DEFAULT_CATEGORY

    @property
    def choices(self) -> List[ModelChoice]:
        return [self.primary, *self.fallbacks]

    def choice_for(self, provider: str) -> Optional[ModelChoice]:
        """First choice for ``provider``, or None."""
        for choice in self.choices:
            if choice.provider == provider:
                return choice
        return None


# =============================================================================
# Category strategy
# =============================================================================


CATEGORY_STRATEGY: Dict[str, StrategyEntry] = {
    "creative": StrategyEntry(
        ordered_models=(("claude", "claude-3-opus"), ("openai", "gpt-4o"), ("mistral", "mistral-large")),
        base_temperature=0.7,
        rationale="Creativity benefits from expressive, stylistic models.",
    ),
    "emotional": StrategyEntry(
        ordered_models=(("claude", "claude-3-opus"), ("openai", "gpt-4o")),
        base_temperature=0.6,
        rationale="Emotional nuance prefers empathetic language models.",
    ),
    "code": StrategyEntry(
        ordered_models=(("openai", "gpt-4o"), ("deepseek", "deepseek-coder"), ("qwen", "qwen-max")),
        base_temperature=0.1,
        rationale="Code requires precision and deterministic reasoning.",
    ),
    "math": StrategyEntry(
        ordered_models=(("openai", "gpt-4o"), ("deepseek", "deepseek-math")),
        base_temperature=0.0,
        rationale="Math tasks must be strictly deterministic.",
    ),
    "vision": StrategyEntry(
        ordered_models=(("openai", "gpt-4o"),),
        base_temperature=0.2,
        rationale="Vision tasks rely on multimodal capability.",
    ),
    "branding": StrategyEntry(
        ordered_models=(("claude", "claude-3-opus"), ("openai", "gpt-4o"), ("mistral", "mistral-large")),
        base_temperature=0.6,
        rationale="Brand voice requires controlled creativity.",
    ),
    "efficiency": StrategyEntry(
        ordered_models=(("qwen", "qwen-max"), ("openai", "gpt-4o-mini")),
        base_temperature=0.15,
        rationale="Efficiency prioritizes speed and cost.",
    ),
    "informative": StrategyEntry(
        ordered_models=(("openai", "gpt-4o"), ("claude", "claude-3-sonnet")),
        base_temperature=0.25,
        rationale="Informative tasks value clarity and accuracy.",
    ),
    "current": StrategyEntry(
        ordered_models=(("openai", "gpt-4o"),),
        base_temperature=0.3,
        rationale="Current tasks use general-purpose models.",
    ),
    "fast": StrategyEntry(
        ordered_models=(("groq", "llama-3.1-8b-instant"), ("openai", "gpt-4o-mini")),
        base_temperature=0.2,
        rationale="High-confidence trivial requests go to the lowest-latency models.",
    ),
    "other": StrategyEntry(
        ordered_models=(("openai", "gpt-4o-mini"),),
        base_temperature=0.3,
        rationale="Safe default for uncategorized tasks.",
    ),
}


# =============================================================================
# Helpers
# =============================================================================


def _clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))


def _complexity_label(complexity: ComplexityLike) -> str:
    if complexity is None:
        return Complexity.MEDIUM.value
    if isinstance(complexity, Complexity):
        return complexity.value
    try:
        return Complexity(complexity).value
    except ValueError:
        return Complexity.MEDIUM.value


def _coerce_confidence(confidence: object) -> Optional[float]:
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return None
    return float(confidence)


def compute_temperature(
    base_temperature: float,
    confidence: Optional[float] = None,
    complexity: ComplexityLike = Complexity.MEDIUM,
) -> float:
    """
    Adjust a base temperature for complexity and confidence.

    High complexity lowers it, low complexity raises it; confident
    classifications lower it and unsure ones raise it. The result is clamped
    to [0, 1] and rounded to two decimals.
    """
    temperature = _clamp(base_temperature)
    label = _complexity_label(complexity)
    if label == Complexity.HIGH.value:
        temperature -= HIGH_COMPLEXITY_DELTA
    elif label == Complexity.LOW.value:
        temperature += LOW_COMPLEXITY_DELTA

    conf = _coerce_confidence(confidence)
    if conf is not None:
        if conf > HIGH_CONFIDENCE_THRESHOLD:
            temperature -= HIGH_CONFIDENCE_DELTA
        if conf < LOW_CONFIDENCE_THRESHOLD:
            temperature += LOW_CONFIDENCE_DELTA

    return _clamp(round(temperature, 2))


def resolve_category(
    category: Optional[str],
    confidence: Optional[float] = None,
    complexity: ComplexityLike = None,
    strategies: Optional[Mapping[str, StrategyEntry]] = None,
    fast_lane_min_confidence: float = FAST_LANE_MIN_CONFIDENCE,
) -> str:
    """
    Normalize a category to one the table can serve.

    The "fast" category is honored only with confidence at or above
    ``fast_lane_min_confidence`` and low complexity; otherwise it becomes
    "other". Unknown or empty categories also become "other".
    """
    table = CATEGORY_STRATEGY if strategies is None else strategies
    key = (category or "").strip().lower()
    if key == FAST_CATEGORY:
        conf = _coerce_confidence(confidence)
        if conf is None or conf < fast_lane_min_confidence or _complexity_label(complexity) != Complexity.LOW.value:
            return DEFAULT_CATEGORY
    if key not in table:
        return DEFAULT_CATEGORY
    return key


# =============================================================================
# Strategy table
# =============================================================================


class StrategyTable:
    """Category to execution plan lookup."""

    def __init__(
        self,
        strategies: Optional[Mapping[str, StrategyEntry]] = None,
        fast_lane_min_confidence: float = FAST_LANE_MIN_CONFIDENCE,
    ):
        self.strategies: Dict[str, StrategyEntry] = dict(CATEGORY_STRATEGY if strategies is None else strategies)
        if DEFAULT_CATEGORY not in self.strategies:
            self.strategies[DEFAULT_CATEGORY] = CATEGORY_STRATEGY[DEFAULT_CATEGORY]
        self.fast_lane_min_confidence = fast_lane_min_confidence

    def categories(self) -> List[str]:
        return sorted(self.strategies)

    def resolve_category(self, category: Optional[str], confidence: Optional[float] = None, complexity: ComplexityLike = None) -> str:
        return resolve_category(category, confidence, complexity, self.strategies, self.fast_lane_min_confidence)

    def select_strategy(
        self,
        category: Optional[str],
        confidence: Optional[float] = None,
        complexity: ComplexityLike = Complexity.MEDIUM,
    ) -> ModelExecutionPlan:
        """
        Build the execution plan for a category.

        Args:
            category: Intent category; unknown values use the "other" entry.
            confidence: Classifier confidence, if known.
            complexity: Task complexity label (default "medium").

        Returns:
            ModelExecutionPlan with primary, fallbacks (same temperature) and
            a " | "-joined reason.
        """
        resolved = self.resolve_category(category, confidence, complexity)
        entry = self.strategies[resolved]
        temperature = compute_temperature(entry.base_temperature, confidence, complexity)

        choices = [ModelChoice(provider=p, model=m, temperature=temperature) for p, m in entry.ordered_models]
        if not choices:
            fallback_entry = CATEGORY_STRATEGY[DEFAULT_CATEGORY]
            choices = [ModelChoice(provider=p, model=m, temperature=temperature) for p, m in fallback_entry.ordered_models]

        conf = _coerce_confidence(confidence)
        reason = " | ".join([
            f"Category: {resolved}",
            f"Complexity: {_complexity_label(complexity)}",
            f"IntentConfidence: {conf}" if conf is not None else "IntentConfidence: n/a",
            entry.rationale,
        ])

        logger.debug(f"Strategy for '{category}' -> '{resolved}': primary={choices[0].provider}/{choices[0].model}, temperature={temperature}")
        return ModelExecutionPlan(primary=choices[0], fallbacks=choices[1:], reason=reason, category=resolved)
