# src/rexcore/models.py
"""
Core data models for the rexcore library.

This module defines the Pydantic models used to represent the data flowing
through the dispatch core: intent profiles and decomposed tasks supplied by
upstream collaborators, routing candidates and decisions produced by the
router, execution configuration and results exchanged with capabilities,
and cost reports. These models ensure data consistency and validation at
the boundaries of the library.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Reason tags carried by candidates. The tier field is authoritative for
# ordering; the reason string is kept human-readable.
STRATEGIC_REASON_PREFIX = "strategic:"
GENERIC_REASON = "from-config"


class Complexity(str, Enum):
    """Complexity label attached to a request or sub-task."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    DEEP = "deep"

    @classmethod
    def _missing_(cls, value: object):  # type: ignore[misc]
        """Case-insensitive lookup."""
        if isinstance(value, str):
            lower_value = value.strip().lower()
            for member in cls:
                if member.value == lower_value:
                    return member
        return None


class ExecutionDepth(str, Enum):
    """Execution depth tier; maps to a per-capability retry budget."""
    FAST = "fast"
    NORMAL = "normal"
    DEEP = "deep"


class CandidateTier(str, Enum):
    """
    Ranking tier of a routing candidate.

    STRATEGIC, FAILSAFE and SECONDARY candidates all rank ahead of GENERIC
    ones; GENERIC candidates are purely cost/latency ranked.
    """
    STRATEGIC = "strategic"
    FAILSAFE = "failsafe"
    SECONDARY = "secondary"
    GENERIC = "generic"

    @property
    def is_strategic(self) -> bool:
        return self is not CandidateTier.GENERIC


class IntentProfile(BaseModel):
    """
    Intent profile produced by the (external) classifier.

    Attributes:
        intent: Short intent label.
        category: Category used to look up a routing strategy.
        confidence: Classifier confidence in [0, 1].
        complexity: Optional complexity label.
        depth: Optional execution depth tier.
        entities: Free-form extracted entities.
    """
    intent: str = Field(default="unknown")
    category: str = Field(default="other")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    complexity: Optional[Complexity] = Field(default=None)
    depth: Optional[ExecutionDepth] = Field(default=None)
    entities: Dict[str, Any] = Field(default_factory=dict)


class DecomposedTask(BaseModel):
    """A sub-task derived from a request by the (external) decomposer."""
    id: str
    text: str
    role: Optional[str] = Field(default=None)
    meta: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list, description="Task ids that must complete first.")
    priority: Optional[int] = Field(default=None, description="Higher executes earlier.")

    def word_count(self) -> int:
        return len(self.text.split())

    def estimated_tokens(self) -> int:
        """Rough token estimate: one token per four words, at least one."""
        return max(1, round(self.word_count() / 4))


class MessageRequest(BaseModel):
    """Request entering the pipeline."""
    user_id: Optional[str] = Field(default=None)
    text: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)


class Candidate(BaseModel):
    """One way to answer a sub-task: a provider, a model alias and routing heuristics."""
    provider: str
    model: str
    temperature: Optional[float] = Field(default=None)
    cost_estimate: Optional[float] = Field(default=None, description="Currency per 1K usage units.")
    latency_estimate_ms: Optional[float] = Field(default=None)
    quality_score: Optional[float] = Field(default=None)
    tier: CandidateTier = Field(default=CandidateTier.GENERIC)
    reason: str = Field(default=GENERIC_REASON)

    @property
    def is_strategic(self) -> bool:
        return self.tier.is_strategic


class RoutingDecision(BaseModel):
    """
    Routing decision for a single sub-task.

    Candidates are sorted ascending by score (lower is better) and
    ``selected`` is always ``candidates[0]`` when the list is non-empty.
    ``degraded`` is set when part of the routing failed and the decision
    was built best-effort; ``warnings`` explains what was skipped.
    """
    task_id: str
    candidates: List[Candidate] = Field(default_factory=list)
    selected: Optional[Candidate] = Field(default=None)
    scores: List[float] = Field(default_factory=list)
    parallel: bool = Field(default=False)
    degraded: bool = Field(default=False)
    warnings: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _selected_is_best(self) -> "RoutingDecision":
        self.selected = self.candidates[0] if self.candidates else None
        return self


class ExecuteConfig(BaseModel):
    """Per-call configuration handed to ``Capability.execute``."""
    model: Optional[str] = Field(default=None, description="Model alias or concrete identifier.")
    max_tokens: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    retries: Optional[int] = Field(default=None, ge=0)
    extra: Dict[str, Any] = Field(default_factory=dict, description="Provider-specific overrides.")

    def merged(self, **overrides: Any) -> "ExecuteConfig":
        """Return a copy with non-None overrides applied."""
        update = {k: v for k, v in overrides.items() if v is not None}
        return self.model_copy(update=update)


class ExecuteResult(BaseModel):
    """Result returned by a capability."""
    text: str = Field(default="")
    tokens_used: Optional[int] = Field(default=None)
    latency_ms: Optional[float] = Field(default=None)
    meta: Dict[str, Any] = Field(default_factory=dict)

    @property
    def flagged_partial(self) -> bool:
        return bool(self.meta.get("partial"))


class CostBreakdownItem(BaseModel):
    provider: str
    model: str
    tokens: int = 0
    cost: float = 0.0


class CostReport(BaseModel):
    """Token and cost accounting for one request."""
    tokens_input: int = 0
    tokens_output: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    breakdown: List[CostBreakdownItem] = Field(default_factory=list)


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VerificationIssue(BaseModel):
    """One finding from the verifier."""
    type: str = Field(..., description="instruction-violation, logical or hallucination.")
    message: str
    severity: IssueSeverity = Field(default=IssueSeverity.MEDIUM)


class VerificationResult(BaseModel):
    """
    Verifier output for one task.

    ``verified`` is True when no issue was found. Verification is advisory:
    it never changes the response or the request outcome.
    """
    verified: bool = True
    task_id: Optional[str] = Field(default=None)
    issues: List[VerificationIssue] = Field(default_factory=list)
    corrections: List[str] = Field(default_factory=list)
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PipelineContext(BaseModel):
    """State collected as a request flows through the pipeline."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    request: MessageRequest
    intent: Optional[IntentProfile] = Field(default=None)
    tasks: List[DecomposedTask] = Field(default_factory=list)
    routing: Dict[str, RoutingDecision] = Field(default_factory=dict)
    cost: Optional[CostReport] = Field(default=None)
    verification: Dict[str, VerificationResult] = Field(default_factory=dict)
    logs: List[Dict[str, Any]] = Field(default_factory=list)

    def log(self, message: str, **meta: Any) -> None:
        self.logs.append({
            "ts": datetime.now(timezone.utc).isoformat(),
            "message": message,
            "meta": meta,
        })
