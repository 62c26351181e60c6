# src/rexcore/capabilities/mock_capability.py
"""
Offline capability used for local development and tests.

By default it echoes the prompt back. It can be told to fail a number of
times first, to sleep before answering, or to play back a scripted list of
outcomes (texts, result dicts, ExecuteResults or exceptions).
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Union

from ..exceptions import ProviderError
from ..models import ExecuteConfig, ExecuteResult
from .base import BaseCapability

logger = logging.getLogger(__name__)

ScriptedOutcome = Union[str, Dict[str, Any], ExecuteResult, BaseException]


class MockCapability(BaseCapability):
    """Echo capability with optional simulated failures."""

    capability_id = "mock"
    DEFAULT_MODEL = "mock-echo"

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        capability_id: Optional[str] = None,
        fail_times: int = 0,
        delay_s: float = 0.0,
        response: Optional[str] = None,
        partial: bool = False,
        script: Optional[Sequence[ScriptedOutcome]] = None,
    ):
        if capability_id:
            self.capability_id = capability_id
        config = dict(config or {})
        super().__init__(config)
        self.remaining_fails = int(config.get("fail_times", fail_times))
        self.delay_s = float(config.get("delay_s", delay_s))
        self.response: Optional[str] = config.get("response", response)
        self.partial = bool(config.get("partial", partial))
        self._script: List[ScriptedOutcome] = list(script or [])
        self.calls: List[Dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def _execute(self, prompt: str, config: ExecuteConfig) -> ExecuteResult:
        self.calls.append({"prompt": prompt, "config": config})
        if self.delay_s > 0:
            await asyncio.sleep(self.delay_s)

        if self.remaining_fails > 0:
            self.remaining_fails -= 1
            raise ProviderError(self.capability_id, "simulated-failure")

        if self._script:
            outcome = self._script.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            if isinstance(outcome, ExecuteResult):
                return outcome
            if isinstance(outcome, dict):
                return ExecuteResult(**outcome)
            return self._echo(str(outcome))

        return self._echo(self.response if self.response is not None else prompt)

    def _echo(self, text: str) -> ExecuteResult:
        words = len(text.split())
        meta: Dict[str, Any] = {"provider": self.capability_id}
        if self.partial:
            meta["partial"] = True
        return ExecuteResult(text=text, tokens_used=math.ceil(words / 0.75), meta=meta)
