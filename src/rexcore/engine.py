# src/rexcore/engine.py
"""
RExEngine: thin orchestrator around the dispatch core.

handle_message runs one request through:

    rate limit -> classify -> fast-lane normalization -> decompose
    -> route (per task) -> dispatch (failover + secondary tier)
    -> cost accounting and limit checks -> verification -> assemble

Intent classification and task decomposition are injected collaborators
(see IntentClassifier and TaskDecomposer); the defaults treat the whole
message as one "other" task. Process-wide state (the rate limiter buckets
and the per-user usage ledger) is owned by the engine instance.
"""

import inspect
import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .accounting import CostController, TokenBucketRateLimiter, UsageEntry, UserUsageLedger
from .capabilities.registry import CapabilityRegistry
from .config import RExConfig
from .execution.dispatcher import Dispatcher, TaskDispatch
from .logging_config import log_cost_report, log_pipeline_step
from .models import (
    CostReport,
    DecomposedTask,
    ExecuteResult,
    IntentProfile,
    MessageRequest,
    PipelineContext,
    VerificationResult,
)
from .routing.router import Router, resolve_complexity
from .routing.strategy import DEFAULT_CATEGORY, FAST_CATEGORY
from .verification import verify_pipeline

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded."
INTERNAL_ERROR_MESSAGE = "Internal error."
NO_RESPONSE_MESSAGE = "Sorry, I could not get an answer from any model right now. Please try again shortly."


@runtime_checkable
class IntentClassifier(Protocol):
    """Produces an intent profile for a request (sync or async)."""

    def classify(self, request: MessageRequest) -> Any:
        ...


@runtime_checkable
class TaskDecomposer(Protocol):
    """Splits a request into sub-tasks (sync or async)."""

    def decompose(self, request: MessageRequest, intent: IntentProfile) -> Any:
        ...


class DefaultIntentClassifier:
    """
    Uses hints from ``request.meta`` (``category``, ``confidence``,
    ``complexity``, ``depth``) and otherwise returns the "other" category.
    """

    def classify(self, request: MessageRequest) -> IntentProfile:
        meta = request.meta
        data: Dict[str, Any] = {
            "intent": meta.get("intent", "general"),
            "category": meta.get("category", DEFAULT_CATEGORY),
        }
        for key in ("confidence", "complexity", "depth"):
            if meta.get(key) is not None:
                data[key] = meta[key]
        return IntentProfile(**data)


class SingleTaskDecomposer:
    """The whole message is one task."""

    def decompose(self, request: MessageRequest, intent: IntentProfile) -> List[DecomposedTask]:
        return [DecomposedTask(id="t1", text=request.text)]


class EngineResult(BaseModel):
    """What the caller of handle_message gets back."""

    ok: bool
    category: str = Field(default=DEFAULT_CATEGORY)
    model_plan: List[str] = Field(default_factory=list)
    response: str = Field(default="")
    tokens_used: int = Field(default=0)
    estimated_cost: float = Field(default=0.0)
    errors: List[str] = Field(default_factory=list)
    limit_issues: List[str] = Field(default_factory=list)
    cost: Optional[CostReport] = Field(default=None)
    verification: Dict[str, VerificationResult] = Field(default_factory=dict)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class RExEngine:
    """Runs requests through classification, routing, failover and assembly."""

    def __init__(
        self,
        config: RExConfig,
        registry: Optional[CapabilityRegistry] = None,
        classifier: Optional[IntentClassifier] = None,
        decomposer: Optional[TaskDecomposer] = None,
        router: Optional[Router] = None,
        dispatcher: Optional[Dispatcher] = None,
        ledger: Optional[UserUsageLedger] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
    ):
        self.config = config
        self.registry = registry or CapabilityRegistry.from_config(config)
        self.classifier = classifier or DefaultIntentClassifier()
        self.decomposer = decomposer or SingleTaskDecomposer()
        self.router = router or Router(config, self.registry)
        self.dispatcher = dispatcher or Dispatcher(config, self.registry)
        self.ledger = ledger or UserUsageLedger()
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter.from_config(config.rate_limit)

    def normalize_intent(self, intent: IntentProfile, context: Optional[PipelineContext] = None) -> IntentProfile:
        """Downgrade "fast" to "other" unless the fast lane is allowed."""
        if (intent.category or "").strip().lower() != FAST_CATEGORY:
            return intent
        resolved = self.router.strategy_table.resolve_category(
            intent.category, intent.confidence, resolve_complexity(intent, context)
        )
        if resolved == FAST_CATEGORY:
            return intent
        logger.debug(f"Fast lane not eligible (confidence={intent.confidence}); using '{DEFAULT_CATEGORY}'")
        return intent.model_copy(update={"category": DEFAULT_CATEGORY})

    async def handle_message(self, request: MessageRequest, client_ip: str = "unknown") -> EngineResult:
        """
        Handle one message end to end.

        Never raises: unexpected failures return ``ok=False`` with
        "Internal error.".
        """
        user_id = request.user_id

        try:
            if self.config.rate_limit.enabled:
                log_pipeline_step(logger, user_id, "rate_limit", "start", ip=client_ip)
                if not self.rate_limiter.try_acquire(client_ip):
                    log_pipeline_step(logger, user_id, "rate_limit", "error", ip=client_ip)
                    return EngineResult(ok=False, response=RATE_LIMIT_MESSAGE, errors=["rate_limit"])
                log_pipeline_step(logger, user_id, "rate_limit", "end")

            return await self._run(request)
        except Exception as e:
            logger.error(f"Engine fatal error: {e}", exc_info=True)
            return EngineResult(ok=False, response=INTERNAL_ERROR_MESSAGE, errors=[str(e)])

    async def _run(self, request: MessageRequest) -> EngineResult:
        user_id = request.user_id
        context = PipelineContext(request=request)
        errors: List[str] = []

        log_pipeline_step(logger, user_id, "classify", "start")
        intent: IntentProfile = await _maybe_await(self.classifier.classify(request))
        intent = self.normalize_intent(intent, context)
        context.intent = intent
        log_pipeline_step(logger, user_id, "classify", "end", category=intent.category)

        log_pipeline_step(logger, user_id, "decompose", "start")
        tasks: List[DecomposedTask] = list(await _maybe_await(self.decomposer.decompose(request, intent)))
        context.tasks = tasks
        log_pipeline_step(logger, user_id, "decompose", "end", tasks=len(tasks))

        log_pipeline_step(logger, user_id, "routing", "start")
        for task in tasks:
            context.routing[task.id] = self.router.route_task(task, intent, context)
        log_pipeline_step(logger, user_id, "routing", "end")

        log_pipeline_step(logger, user_id, "providers", "start")
        dispatched = await self.dispatcher.dispatch_all(tasks, context.routing, intent, context)
        log_pipeline_step(logger, user_id, "providers", "end")

        cost = CostController(
            user_id=user_id,
            request_id=f"{user_id or 'anonymous'}:{uuid.uuid4().hex[:12]}",
            limits=self.config.cost,
            ledger=self.ledger,
        )
        completed: Dict[str, TaskDispatch] = {}
        for task in tasks:
            item = dispatched.get(task.id)
            if item is None or not item.ok:
                errors.append(f"provider_error:{task.id}")
                continue
            completed[task.id] = item
            cost.add_usage(self._usage_entry(item, self._model_used(item)))

        report = cost.get_report()
        context.cost = report
        log_cost_report(logger, user_id, report)
        limit_issues = cost.check_limits()

        log_pipeline_step(logger, user_id, "verification", "start")
        task_results: Dict[str, List[ExecuteResult]] = {
            task_id: [item.result] for task_id, item in completed.items()
        }
        context.verification = verify_pipeline(context, task_results)
        unverified = [task_id for task_id, verdict in context.verification.items() if not verdict.verified]
        log_pipeline_step(logger, user_id, "verification", "end", unverified=unverified)

        parts: List[str] = []
        model_plan: List[str] = []
        for item in completed.values():
            text = (item.result.text or "").strip()
            if text:
                parts.append(text)
                model_plan.append(self._model_used(item))

        response = "\n\n".join(parts) if parts else NO_RESPONSE_MESSAGE
        return EngineResult(
            ok=not errors,
            category=intent.category,
            model_plan=model_plan,
            response=response,
            tokens_used=report.total_tokens,
            estimated_cost=report.estimated_cost,
            errors=errors,
            limit_issues=limit_issues,
            cost=report,
            verification=context.verification,
        )

    @staticmethod
    def _model_used(item: TaskDispatch) -> str:
        meta_model = item.result.meta.get("model") if item.result else None
        if meta_model:
            return str(meta_model)
        for candidate in item.decision.candidates:
            if candidate.provider == item.outcome.provider_id:
                return candidate.model
        return "unknown"

    @staticmethod
    def _usage_entry(item: TaskDispatch, model: str) -> UsageEntry:
        result = item.result
        tokens_in = result.meta.get("tokens_input")
        tokens_out = result.meta.get("tokens_output")
        if tokens_in is None and tokens_out is None:
            tokens_in, tokens_out = 0, result.tokens_used or 0
        return UsageEntry(
            provider=item.outcome.provider_id or "unknown",
            model=model,
            tokens_input=int(tokens_in or 0),
            tokens_output=int(tokens_out or 0),
        )

    async def close(self) -> None:
        await self.registry.close()
