# src/rexcore/routing/candidates.py
"""
Candidate Builder.

Produces the generic candidate tier from the enabled providers' static
metadata. These candidates are the lowest-priority tier until the router
elevates specific entries with a strategy.
"""

import logging
from typing import List, Optional

from ..capabilities.registry import CapabilityRegistry
from ..config import RExConfig
from ..models import GENERIC_REASON, Candidate, CandidateTier

logger = logging.getLogger(__name__)


def build_candidates(
    config: RExConfig,
    registry: CapabilityRegistry,
    max_candidates: Optional[int] = None,
) -> List[Candidate]:
    """
    Build generic candidates from enabled providers in priority order.

    Args:
        config: rexcore configuration.
        registry: Registry used to drop providers that cannot be executed.
        max_candidates: Stop after this many candidates
            (defaults to ``config.routing.max_candidates``).

    Returns:
        Candidates tagged ``tier=GENERIC`` and ``reason="from-config"``.
    """
    limit = config.routing.max_candidates if max_candidates is None else max_candidates
    candidates: List[Candidate] = []
    if limit <= 0:
        return candidates

    for provider in config.enabled_providers():
        if len(candidates) >= limit:
            break
        if not registry.is_known_capability(provider.name):
            logger.debug(f"Skipping provider '{provider.name}': no capability registered")
            continue
        candidates.append(candidate_from_provider(config, provider.name))

    return candidates


def candidate_from_provider(
    config: RExConfig,
    provider_name: str,
    tier: CandidateTier = CandidateTier.GENERIC,
    reason: str = GENERIC_REASON,
) -> Candidate:
    """Candidate populated from one provider's metadata (or routing defaults)."""
    provider = config.get_provider(provider_name)
    name = provider.name if provider else provider_name.strip().lower()
    meta = provider.meta if provider else None
    return Candidate(
        provider=name,
        model=(meta.default_model if meta and meta.default_model else f"{name}-default"),
        temperature=meta.default_temperature if meta else None,
        cost_estimate=meta.cost_per_1k if meta else None,
        latency_estimate_ms=meta.latency_ms if meta else None,
        quality_score=meta.quality_score if meta else None,
        tier=tier,
        reason=reason,
    )
