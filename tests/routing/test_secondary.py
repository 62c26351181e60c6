# tests/routing/test_secondary.py
"""
Tests for the secondary quality/cost/latency selector.
"""

import pytest

from rexcore.models import CandidateTier, DecomposedTask, IntentProfile
from rexcore.routing.secondary import (
    INTENT_WEIGHTS,
    NEUTRAL_COST,
    NEUTRAL_LATENCY_MS,
    NEUTRAL_QUALITY,
    SECONDARY_REASON,
    SecondarySelector,
    QualityWeights,
    score_provider,
    weights_for,
)


class TestScoreProvider:
    """Weighted score, higher is better."""

    def test_formula(self):
        weights = QualityWeights(quality=0.5, cost=0.25, latency=0.25)

        assert score_provider(0.8, 2.0, 400.0, weights) == pytest.approx(0.4 + 0.125 + 0.000625)

    def test_non_positive_cost_and_latency_use_neutral_values(self):
        weights = INTENT_WEIGHTS["other"]

        assert score_provider(0.5, 0.0, -1.0, weights) == pytest.approx(
            score_provider(0.5, NEUTRAL_COST, NEUTRAL_LATENCY_MS, weights)
        )

    def test_weights_for_unknown_category(self):
        assert weights_for("astrology") == INTENT_WEIGHTS["other"]
        assert weights_for(None) == INTENT_WEIGHTS["other"]
        assert weights_for(" Code ") == INTENT_WEIGHTS["code"]


class TestSecondarySelector:
    """Ranking of the last-resort tier."""

    def test_sorted_descending_and_tagged(self, make_config, mock_registry):
        config = make_config("openai", "groq", "claude")
        selector = SecondarySelector(config, mock_registry("openai", "groq", "claude"))

        candidates = selector.select_by_quality_cost_latency(intent=IntentProfile(category="creative"))

        weights = weights_for("creative")
        scores = [
            score_provider(c.quality_score, c.cost_estimate, c.latency_estimate_ms, weights)
            for c in candidates
        ]
        assert scores == sorted(scores, reverse=True)
        assert candidates[0].provider == "groq"
        assert all(c.tier is CandidateTier.SECONDARY for c in candidates)
        assert all(c.reason == SECONDARY_REASON for c in candidates)
        assert all(c.model == "default" for c in candidates)

    def test_excluded_providers_skipped(self, make_config, mock_registry):
        selector = SecondarySelector(make_config("openai", "groq"), mock_registry("openai", "groq"))

        candidates = selector.select_by_quality_cost_latency(
            DecomposedTask(id="t1", text="x"), excluded_provider_ids=["GROQ"]
        )

        assert [c.provider for c in candidates] == ["openai"]

    def test_disabled_and_unknown_skipped(self, make_config, mock_registry):
        config = make_config("openai", "groq", "homegrown", disabled=("groq",))
        selector = SecondarySelector(config, mock_registry("openai", "groq"))

        candidates = selector.select_by_quality_cost_latency()

        assert [c.provider for c in candidates] == ["openai"]

    def test_neutral_defaults_for_missing_metadata(self, make_config, mock_registry):
        selector = SecondarySelector(make_config("homegrown"), mock_registry("homegrown"))

        candidate = selector.select_by_quality_cost_latency()[0]

        assert candidate.quality_score == NEUTRAL_QUALITY
        assert candidate.cost_estimate == NEUTRAL_COST
        assert candidate.latency_estimate_ms == NEUTRAL_LATENCY_MS

    def test_nothing_left(self, make_config, mock_registry):
        selector = SecondarySelector(make_config("openai"), mock_registry("openai"))

        assert selector.select_by_quality_cost_latency(excluded_provider_ids=["openai"]) == []
