# tests/execution/test_failover.py
"""
Tests for the failover executor.

Tests cover:
1. Ordered failover across capabilities
2. Retry budgets (flat retries and execution depth)
3. Backoff delays between retries
4. Partial classification, merging and acceptance
5. Per-attempt timeouts
6. Caller misuse (empty capability list)
"""

import asyncio

import pytest

from rexcore.capabilities import MockCapability
from rexcore.exceptions import CapabilityTimeoutError, FailoverConfigError, ProviderError
from rexcore.execution.failover import (
    DEPTH_RETRY_BUDGET,
    PARTIAL_SEPARATOR,
    FailoverExecutor,
    FailoverOptions,
    execute_with_failover,
    is_partial_result,
    merge_partials,
)
from rexcore.models import ExecuteResult, ExecutionDepth

LONG_TEXT = "ok response text that is long enough"


def failing(capability_id: str, times: int = 100) -> MockCapability:
    return MockCapability(capability_id=capability_id, fail_times=times, response=LONG_TEXT)


def answering(capability_id: str, text: str = LONG_TEXT) -> MockCapability:
    return MockCapability(capability_id=capability_id, response=text)


# =============================================================================
# TEST: Ordering
# =============================================================================


class TestOrderedFailover:
    """First capability fails, second succeeds."""

    @pytest.mark.asyncio
    async def test_second_capability_result_is_used(self, recording_sleep):
        executor = FailoverExecutor(sleep=recording_sleep)
        a, b = failing("A"), answering("B")

        outcome = await executor.execute_with_failover([a, b], "hello")

        assert outcome.result is not None
        assert outcome.result.text == LONG_TEXT
        assert outcome.provider_id == "B"
        assert outcome.used_providers == ["A", "B"]
        assert outcome.partial is False
        assert len(outcome.errors) == 1
        assert outcome.errors[0].capability_id == "A"
        assert isinstance(outcome.errors[0].error, ProviderError)

    @pytest.mark.asyncio
    async def test_constant_backoff_failover_to_second(self, recording_sleep):
        """A throws, B answers: constant backoff with a 1ms base."""
        outcome = await execute_with_failover(
            [failing("A"), answering("B")],
            "prompt",
            options={"backoff": "constant", "backoff_base_ms": 1},
            sleep=recording_sleep,
        )

        assert "ok response text" in outcome.result.text
        assert outcome.partial is False
        assert outcome.used_providers == ["A", "B"]

    @pytest.mark.asyncio
    async def test_first_success_stops_iteration(self):
        a, b = answering("A"), answering("B")

        outcome = await FailoverExecutor().execute_with_failover([a, b], "hi there")

        assert outcome.provider_id == "A"
        assert outcome.used_providers == ["A"]
        assert b.call_count == 0

    @pytest.mark.asyncio
    async def test_capabilities_attempted_in_input_order(self, recording_sleep):
        caps = [failing("c1"), failing("c2"), failing("c3"), answering("c4")]

        outcome = await FailoverExecutor(sleep=recording_sleep).execute_with_failover(caps, "x")

        assert outcome.used_providers == ["c1", "c2", "c3", "c4"]
        assert [e.capability_id for e in outcome.errors] == ["c1", "c2", "c3"]

    @pytest.mark.asyncio
    async def test_all_failed_returns_null_result(self, recording_sleep):
        outcome = await FailoverExecutor(sleep=recording_sleep).execute_with_failover(
            [failing("A"), failing("B")], "x"
        )

        assert outcome.result is None
        assert outcome.provider_id is None
        assert outcome.partial is False
        assert outcome.succeeded is False
        assert outcome.used_providers == ["A", "B"]
        assert len(outcome.errors) == 2

    @pytest.mark.asyncio
    async def test_empty_capability_list_raises(self):
        with pytest.raises(FailoverConfigError):
            await FailoverExecutor().execute_with_failover([], "x")


# =============================================================================
# TEST: Retry budget
# =============================================================================


class TestRetryBudget:
    """Retries are exhausted on one capability before moving on."""

    @pytest.mark.asyncio
    async def test_budget_covers_failures(self, recording_sleep):
        a, b = failing("A", times=2), answering("B")

        outcome = await FailoverExecutor(sleep=recording_sleep).execute_with_failover(
            [a, b], "x", options=FailoverOptions(retries=2)
        )

        assert outcome.provider_id == "A"
        assert outcome.used_providers == ["A"]
        assert a.call_count == 3
        assert b.call_count == 0

    @pytest.mark.asyncio
    async def test_budget_too_small_fails_over(self, recording_sleep):
        a, b = failing("A", times=2), answering("B")

        outcome = await FailoverExecutor(sleep=recording_sleep).execute_with_failover(
            [a, b], "x", options=FailoverOptions(retries=1)
        )

        assert outcome.provider_id == "B"
        assert outcome.used_providers == ["A", "B"]
        assert a.call_count == 2
        assert [e.attempt for e in outcome.errors] == [1, 2]

    @pytest.mark.asyncio
    async def test_deep_depth_allows_three_retries(self, recording_sleep):
        a = failing("A", times=3)

        outcome = await FailoverExecutor(sleep=recording_sleep).execute_with_failover(
            [a, answering("B")], "x", options=FailoverOptions(depth=ExecutionDepth.DEEP)
        )

        assert outcome.provider_id == "A"
        assert a.call_count == 4

    @pytest.mark.asyncio
    async def test_depth_overrides_flat_retries(self, recording_sleep):
        a = failing("A", times=1)

        outcome = await FailoverExecutor(sleep=recording_sleep).execute_with_failover(
            [a, answering("B")], "x", options=FailoverOptions(depth="fast", retries=5)
        )

        assert outcome.provider_id == "B"
        assert a.call_count == 1

    def test_depth_budget_table(self):
        assert DEPTH_RETRY_BUDGET[ExecutionDepth.FAST] == 0
        assert DEPTH_RETRY_BUDGET[ExecutionDepth.NORMAL] == 1
        assert DEPTH_RETRY_BUDGET[ExecutionDepth.DEEP] == 3
        assert FailoverOptions(depth="normal").retry_budget() == 1
        assert FailoverOptions(retries=2).retry_budget() == 2

    @pytest.mark.asyncio
    async def test_backoff_sleeps_only_between_retries(self, recording_sleep):
        a = failing("A", times=3)

        await FailoverExecutor(sleep=recording_sleep).execute_with_failover(
            [a, answering("B")],
            "x",
            options=FailoverOptions(retries=2, backoff="exponential", backoff_base_ms=100, max_backoff_ms=5000),
        )

        # attempts 1 and 2 of A are followed by a retry; attempt 3 moves on to B
        assert recording_sleep.delays == [pytest.approx(0.2), pytest.approx(0.4)]

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, recording_sleep):
        await FailoverExecutor(sleep=recording_sleep).execute_with_failover(
            [failing("A", times=2), answering("B")],
            "x",
            options=FailoverOptions(retries=2, backoff="linear", backoff_base_ms=1000, max_backoff_ms=1500),
        )

        assert recording_sleep.delays == [pytest.approx(1.0), pytest.approx(1.5)]


# =============================================================================
# TEST: Partial results
# =============================================================================


class TestPartialResults:
    """Short or flagged results are kept aside and merged."""

    @pytest.mark.asyncio
    async def test_all_partial_results_are_merged(self):
        outcome = await FailoverExecutor().execute_with_failover(
            [answering("A", "hi"), answering("B", "yo")],
            "x",
            options=FailoverOptions(partial_threshold_chars=20),
        )

        assert outcome.partial is True
        assert outcome.provider_id == "A"
        assert outcome.result.text == f"hi{PARTIAL_SEPARATOR}yo"
        assert outcome.result.meta["partial"] is True
        assert [s["provider"] for s in outcome.result.meta["sources"]] == ["A", "B"]
        assert outcome.result.tokens_used == 4

    @pytest.mark.asyncio
    async def test_allow_partial_accepts_final_partial(self):
        """A returns "hi", B returns "yo", partial results allowed."""
        outcome = await FailoverExecutor().execute_with_failover(
            [answering("A", "hi"), answering("B", "yo")],
            "x",
            options=FailoverOptions(partial_threshold_chars=20, allow_partial=True),
        )

        assert outcome.partial is True
        assert "hi" in outcome.result.text
        assert "yo" in outcome.result.text
        assert outcome.provider_id == "B"
        assert outcome.result.meta["accepted_partial"] is True

    @pytest.mark.asyncio
    async def test_full_result_after_partial_wins(self):
        outcome = await FailoverExecutor().execute_with_failover(
            [answering("A", "hi"), answering("B")],
            "x",
        )

        assert outcome.partial is False
        assert outcome.provider_id == "B"
        assert outcome.result.text == LONG_TEXT

    @pytest.mark.asyncio
    async def test_meta_flag_marks_partial(self):
        flagged = MockCapability(capability_id="A", response=LONG_TEXT, partial=True)

        outcome = await FailoverExecutor().execute_with_failover([flagged, answering("B")], "x")

        assert outcome.provider_id == "B"
        assert outcome.partial is False

    @pytest.mark.asyncio
    async def test_partial_retry_records_first_fragment_only(self):
        a = answering("A", "short")

        outcome = await FailoverExecutor().execute_with_failover(
            [a], "x", options=FailoverOptions(retries=1)
        )

        assert a.call_count == 2
        assert outcome.partial is True
        assert outcome.result.text == "short"

    @pytest.mark.asyncio
    async def test_errors_and_partials_combine(self, recording_sleep):
        outcome = await FailoverExecutor(sleep=recording_sleep).execute_with_failover(
            [answering("A", "tiny"), failing("B")],
            "x",
        )

        assert outcome.partial is True
        assert outcome.provider_id == "A"
        assert outcome.result.text == "tiny"
        assert len(outcome.errors) == 1

    def test_is_partial_result(self):
        assert is_partial_result(ExecuteResult(text="abc"), 20) is True
        assert is_partial_result(ExecuteResult(text="x" * 20), 20) is False
        assert is_partial_result(ExecuteResult(text="x" * 50, meta={"partial": True}), 20) is True

    def test_merge_partials_skips_empty_text(self):
        merged = merge_partials([
            ("A", ExecuteResult(text="one", tokens_used=3)),
            ("B", ExecuteResult(text="", tokens_used=None)),
            ("C", ExecuteResult(text="two", tokens_used=2)),
        ])

        assert merged.text == f"one{PARTIAL_SEPARATOR}two"
        assert merged.tokens_used == 5
        assert len(merged.meta["sources"]) == 3


# =============================================================================
# TEST: Result shapes
# =============================================================================


class ShapedCapability:
    """Plain capability object (no BaseCapability) returning a fixed value."""

    def __init__(self, capability_id, value):
        self.id = capability_id
        self.value = value

    async def execute(self, prompt, config=None):
        return self.value


class TestResultShapes:
    """Capabilities outside BaseCapability may return dicts or garbage."""

    @pytest.mark.asyncio
    async def test_dict_result_is_normalized(self):
        cap = ShapedCapability("x", {"text": LONG_TEXT, "tokens_used": 5, "meta": {"model": "m"}})

        outcome = await FailoverExecutor().execute_with_failover([cap], "hi")

        assert isinstance(outcome.result, ExecuteResult)
        assert outcome.result.text == LONG_TEXT
        assert outcome.result.tokens_used == 5
        assert outcome.result.meta == {"model": "m"}
        assert outcome.provider_id == "x"

    @pytest.mark.asyncio
    async def test_dict_with_camel_case_tokens(self):
        cap = ShapedCapability("x", {"text": LONG_TEXT, "tokensUsed": 7})

        outcome = await FailoverExecutor().execute_with_failover([cap], "hi")

        assert outcome.result.tokens_used == 7

    @pytest.mark.asyncio
    async def test_dict_partial_flag_is_honored(self):
        cap = ShapedCapability("x", {"text": LONG_TEXT, "meta": {"partial": True}})

        outcome = await FailoverExecutor().execute_with_failover([cap], "hi")

        assert outcome.partial is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [None, "plain string", 42])
    async def test_invalid_result_is_recorded_and_failed_over(self, value):
        outcome = await FailoverExecutor().execute_with_failover(
            [ShapedCapability("bad", value), answering("B")], "hi"
        )

        assert outcome.provider_id == "B"
        assert len(outcome.errors) == 1
        assert outcome.errors[0].capability_id == "bad"
        assert isinstance(outcome.errors[0].error, ProviderError)

    @pytest.mark.asyncio
    async def test_dict_result_under_timeout(self):
        cap = ShapedCapability("x", {"text": LONG_TEXT})

        outcome = await FailoverExecutor().execute_with_failover(
            [cap], "hi", options=FailoverOptions(per_attempt_timeout_ms=1000)
        )

        assert outcome.result.text == LONG_TEXT

# =============================================================================
# TEST: Timeouts and statistics
# =============================================================================


class TestTimeoutsAndStatistics:
    """Per-attempt timeouts count as failures."""

    @pytest.mark.asyncio
    async def test_slow_capability_times_out(self, recording_sleep):
        slow = MockCapability(capability_id="slow", response=LONG_TEXT, delay_s=0.2)
        executor = FailoverExecutor(sleep=recording_sleep)

        outcome = await executor.execute_with_failover(
            [slow, answering("fast")],
            "x",
            options=FailoverOptions(per_attempt_timeout_ms=20),
        )

        assert outcome.provider_id == "fast"
        assert isinstance(outcome.errors[0].error, CapabilityTimeoutError)
        assert outcome.errors[0].error.timeout_ms == 20
        assert executor.get_statistics()["timeouts"] == 1
        # the abandoned call still completes in the background
        await asyncio.sleep(0.25)
        assert slow.call_count == 1

    @pytest.mark.asyncio
    async def test_statistics(self, recording_sleep):
        executor = FailoverExecutor(sleep=recording_sleep)

        await executor.execute_with_failover([answering("A")], "x")
        await executor.execute_with_failover([failing("A"), answering("B")], "x")
        await executor.execute_with_failover([failing("A")], "x")

        stats = executor.get_statistics()
        assert stats["total_executions"] == 3
        assert stats["successful_primary"] == 1
        assert stats["successful_failover"] == 1
        assert stats["all_failed"] == 1
        assert stats["failure_rate"] == pytest.approx(1 / 3)

    def test_options_from_config(self):
        from rexcore.config import FailoverConfig

        options = FailoverOptions.from_config(FailoverConfig(allow_partial=True), depth="deep")

        assert options.allow_partial is True
        assert options.depth is ExecutionDepth.DEEP
        assert options.per_attempt_timeout_ms == 15000
