# src/rexcore/execution/dispatcher.py
"""
Dispatcher: runs routed sub-tasks through the failover executor.

For each task the routing decision's candidates are materialized into
capabilities and executed with failover. If that tier produces nothing,
the secondary quality/cost/latency tier is tried with every provider
already attempted excluded.

Tasks of one request are grouped into dependency waves. A wave runs
concurrently only when every decision in it permits parallel fan-out.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from ..capabilities.registry import CapabilityRegistry
from ..config import RExConfig
from ..models import DecomposedTask, ExecuteConfig, ExecuteResult, IntentProfile, PipelineContext, RoutingDecision
from ..routing.secondary import SecondarySelector
from .failover import FailoverExecutor, FailoverOptions, FailoverOutcome

logger = logging.getLogger(__name__)


@dataclass
class TaskDispatch:
    """Execution record for one sub-task."""

    task_id: str
    decision: RoutingDecision
    outcome: FailoverOutcome
    secondary_used: bool = False

    @property
    def result(self) -> Optional[ExecuteResult]:
        return self.outcome.result

    @property
    def ok(self) -> bool:
        return self.outcome.result is not None


def plan_waves(tasks: Sequence[DecomposedTask]) -> List[List[DecomposedTask]]:
    """
    Group tasks so each runs after its dependencies.

    Within a wave, higher ``priority`` comes first (unset counts as 0) and
    input order breaks ties. Tasks whose dependencies are unknown or cyclic
    end up together in the last wave.
    """
    known_ids = {t.id for t in tasks}
    remaining = list(tasks)
    done: set = set()
    waves: List[List[DecomposedTask]] = []

    def by_priority(items: List[DecomposedTask]) -> List[DecomposedTask]:
        return sorted(items, key=lambda t: -(t.priority or 0))

    while remaining:
        ready = [
            t for t in remaining
            if all(dep in known_ids and dep in done for dep in t.dependencies)
        ]
        if not ready:
            logger.warning(f"Unresolvable dependencies for tasks {[t.id for t in remaining]}; running them last")
            waves.append(by_priority(remaining))
            break
        waves.append(by_priority(ready))
        done.update(t.id for t in ready)
        remaining = [t for t in remaining if t.id not in done]

    return waves


class Dispatcher:
    """Executes routing decisions with failover and the secondary tier."""

    def __init__(
        self,
        config: RExConfig,
        registry: CapabilityRegistry,
        executor: Optional[FailoverExecutor] = None,
        secondary: Optional[SecondarySelector] = None,
    ):
        self.config = config
        self.registry = registry
        self.executor = executor or FailoverExecutor()
        self.secondary = secondary or SecondarySelector(config, registry)

    def _execute_config(self) -> ExecuteConfig:
        # model and temperature stay unset so each bound capability applies its candidate's
        return ExecuteConfig(
            max_tokens=self.config.failover.max_tokens,
            timeout_ms=self.config.failover.per_attempt_timeout_ms,
        )

    def _failover_options(self, intent: Optional[IntentProfile]) -> FailoverOptions:
        return FailoverOptions.from_config(self.config.failover, depth=intent.depth if intent else None)

    async def dispatch(
        self,
        task: DecomposedTask,
        decision: RoutingDecision,
        intent: Optional[IntentProfile] = None,
        context: Optional[PipelineContext] = None,
    ) -> TaskDispatch:
        """
        Execute one routed task.

        Returns:
            TaskDispatch whose outcome has ``result=None`` only when both the
            routed tier and the secondary tier were exhausted.
        """
        exec_config = self._execute_config()
        options = self._failover_options(intent)

        capabilities = self.registry.materialize(decision.candidates)
        primary: Optional[FailoverOutcome] = None
        if capabilities:
            primary = await self.executor.execute_with_failover(capabilities, task.text, exec_config, options)
            if primary.succeeded:
                self._log(context, task, primary, secondary_used=False)
                return TaskDispatch(task.id, decision, primary)
        else:
            logger.warning(f"Task '{task.id}' has no executable candidates; trying the secondary tier")

        attempted = primary.used_providers if primary else []
        secondary_candidates = self.secondary.select_by_quality_cost_latency(task, intent, context, attempted)
        secondary_capabilities = self.registry.materialize(secondary_candidates)

        if not secondary_capabilities:
            outcome = primary or FailoverOutcome(result=None)
            self._log(context, task, outcome, secondary_used=False)
            return TaskDispatch(task.id, decision, outcome)

        logger.info(f"Task '{task.id}': trying secondary tier {[c.id for c in secondary_capabilities]}")
        secondary = await self.executor.execute_with_failover(secondary_capabilities, task.text, exec_config, options)
        outcome = FailoverOutcome(
            result=secondary.result,
            provider_id=secondary.provider_id,
            used_providers=attempted + secondary.used_providers,
            partial=secondary.partial,
            errors=(primary.errors if primary else []) + secondary.errors,
        )
        self._log(context, task, outcome, secondary_used=True)
        return TaskDispatch(task.id, decision, outcome, secondary_used=True)

    async def dispatch_all(
        self,
        tasks: Sequence[DecomposedTask],
        decisions: Mapping[str, RoutingDecision],
        intent: Optional[IntentProfile] = None,
        context: Optional[PipelineContext] = None,
    ) -> Dict[str, TaskDispatch]:
        """
        Execute every task, wave by wave.

        Returns:
            Task id -> TaskDispatch, in execution order.
        """
        results: Dict[str, TaskDispatch] = {}
        for wave in plan_waves(tasks):
            wave_decisions = [decisions.get(t.id) or RoutingDecision(task_id=t.id) for t in wave]
            if len(wave) > 1 and all(d.parallel for d in wave_decisions):
                logger.debug(f"Dispatching {len(wave)} tasks in parallel")
                dispatched = await asyncio.gather(
                    *(self.dispatch(t, d, intent, context) for t, d in zip(wave, wave_decisions))
                )
            else:
                dispatched = []
                for t, d in zip(wave, wave_decisions):
                    dispatched.append(await self.dispatch(t, d, intent, context))
            for item in dispatched:
                results[item.task_id] = item
        return results

    def _log(self, context: Optional[PipelineContext], task: DecomposedTask, outcome: FailoverOutcome, secondary_used: bool) -> None:
        if context is None:
            return
        context.log(
            "dispatched",
            task_id=task.id,
            provider=outcome.provider_id,
            used=outcome.used_providers,
            partial=outcome.partial,
            errors=[e.describe() for e in outcome.errors],
            secondary=secondary_used,
        )
