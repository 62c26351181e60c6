# src/rexcore/execution/__init__.py
"""
Execution package for rexcore.

Backoff delays, the failover executor and the dispatcher that runs routed
sub-tasks through it.
"""

from .backoff import BackoffStrategy, compute_delay
from .dispatcher import Dispatcher, TaskDispatch, plan_waves
from .failover import (
    DEPTH_RETRY_BUDGET,
    PARTIAL_SEPARATOR,
    AttemptError,
    FailoverExecutor,
    FailoverOptions,
    FailoverOutcome,
    execute_with_failover,
    is_partial_result,
    merge_partials,
)

__all__ = [
    "AttemptError",
    "BackoffStrategy",
    "DEPTH_RETRY_BUDGET",
    "Dispatcher",
    "FailoverExecutor",
    "FailoverOptions",
    "FailoverOutcome",
    "PARTIAL_SEPARATOR",
    "TaskDispatch",
    "compute_delay",
    "execute_with_failover",
    "is_partial_result",
    "merge_partials",
    "plan_waves",
]
