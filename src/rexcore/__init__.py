# src/rexcore/__init__.py
"""
rexcore - multi-provider model dispatch core.

Routes each sub-task of a request to a ranked list of model providers
(capability registry, candidate builder, strategy table, router), executes
it with ordered failover, retries, backoff and partial-result merging, and
falls back to a quality/cost/latency ranked tier when every strategic
candidate fails.
"""

from importlib.metadata import PackageNotFoundError, version

from .capabilities import BaseCapability, Capability, CapabilityRegistry, MockCapability
from .config import RExConfig, load_rex_config
from .engine import EngineResult, RExEngine
from .exceptions import (
    CapabilityTimeoutError,
    ConfigError,
    FailoverConfigError,
    ProviderError,
    RateLimitExceededError,
    RExCoreError,
)
from .execution import (
    Dispatcher,
    FailoverExecutor,
    FailoverOptions,
    FailoverOutcome,
    compute_delay,
    execute_with_failover,
)
from .models import (
    Candidate,
    CandidateTier,
    Complexity,
    DecomposedTask,
    ExecuteConfig,
    ExecuteResult,
    ExecutionDepth,
    IntentProfile,
    MessageRequest,
    PipelineContext,
    RoutingDecision,
    VerificationResult,
)
from .routing import Router, RouterOptions, SecondarySelector, StrategyTable, build_candidates
from .verification import verify_pipeline

try:
    __version__ = version("rexcore")
except PackageNotFoundError:
    __version__ = "0.0.0"


__all__ = [
    # Engine
    "EngineResult",
    "RExEngine",
    # Configuration
    "RExConfig",
    "load_rex_config",
    # Capabilities
    "BaseCapability",
    "Capability",
    "CapabilityRegistry",
    "MockCapability",
    # Routing
    "Router",
    "RouterOptions",
    "SecondarySelector",
    "StrategyTable",
    "build_candidates",
    # Execution
    "Dispatcher",
    "FailoverExecutor",
    "FailoverOptions",
    "FailoverOutcome",
    "compute_delay",
    "execute_with_failover",
    # Verification
    "VerificationResult",
    "verify_pipeline",
    # Models
    "Candidate",
    "CandidateTier",
    "Complexity",
    "DecomposedTask",
    "ExecuteConfig",
    "ExecuteResult",
    "ExecutionDepth",
    "IntentProfile",
    "MessageRequest",
    "PipelineContext",
    "RoutingDecision",
    # Exceptions
    "CapabilityTimeoutError",
    "ConfigError",
    "FailoverConfigError",
    "ProviderError",
    "RExCoreError",
    "RateLimitExceededError",
    "__version__",
]
