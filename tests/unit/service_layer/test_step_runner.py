"""
Unit Tests for Checkpointed Step Execution

Tests memoization of step outputs, replay, step-level retries and the hard
step timeout.
"""

import asyncio
import json
from unittest.mock import call

import pytest

from sheetqa.core.exceptions import StepFailure, StepTimeoutError
from sheetqa.core.models import HistoryEntry, HistoryOutput, ReferenceDataOutput
from sheetqa.workflows import StepRetries, StepRunner


def counting_body(output, failures: int = 0, error: Exception | None = None):
    calls = {"count": 0}

    async def body():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise error or RuntimeError(f"failure {calls['count']}")
        return output

    return body, calls


REFERENCE = ReferenceDataOutput(data="a,b\n", description="desc", from_cache=False)


@pytest.mark.unit
class TestStepRetries:
    def test_limit_maps_to_attempts(self):
        config = StepRetries(limit=2, delay_ms=1000).as_retry_config()

        assert config.max_attempts == 3
        assert config.initial_delay_ms == 1000
        assert config.backoff_multiplier == 2


@pytest.mark.unit
class TestStepRunner:
    @pytest.mark.asyncio
    async def test_successful_step_is_checkpointed_in_camel_case(self, in_memory_redis_client, settings):
        # Arrange
        runner = StepRunner(in_memory_redis_client, "wf-1", settings=settings)
        body, calls = counting_body(REFERENCE)

        # Act
        result = await runner.do("getReferenceData", body, ReferenceDataOutput)

        # Assert
        key = "workflow:wf-1:step:getReferenceData"
        assert result == REFERENCE
        assert calls["count"] == 1
        assert runner.completed_steps == 1
        assert json.loads(in_memory_redis_client.data[key]) == {
            "data": "a,b\n",
            "description": "desc",
            "fromCache": False,
        }
        assert in_memory_redis_client.ttls[key] == settings.cache.CACHE_CHECKPOINT_TTL

    @pytest.mark.asyncio
    async def test_committed_step_is_replayed_not_rerun(self, in_memory_redis_client, settings):
        first = StepRunner(in_memory_redis_client, "wf-1", settings=settings)
        body, calls = counting_body(REFERENCE)
        await first.do("getReferenceData", body, ReferenceDataOutput)

        second = StepRunner(in_memory_redis_client, "wf-1", settings=settings)
        replayed = await second.do("getReferenceData", body, ReferenceDataOutput)

        assert replayed == REFERENCE
        assert calls["count"] == 1
        assert second.completed_steps == 1

    @pytest.mark.asyncio
    async def test_checkpoints_are_scoped_per_instance(self, in_memory_redis_client, settings):
        body, calls = counting_body(REFERENCE)

        await StepRunner(in_memory_redis_client, "wf-1", settings=settings).do("s", body, ReferenceDataOutput)
        await StepRunner(in_memory_redis_client, "wf-2", settings=settings).do("s", body, ReferenceDataOutput)

        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_nested_models_survive_replay(self, in_memory_redis_client, settings):
        output = HistoryOutput(history=[HistoryEntry(role="user", text="q"), HistoryEntry(role="model", text="a")])
        body, _ = counting_body(output)
        await StepRunner(in_memory_redis_client, "wf-1", settings=settings).do("getHistory", body, HistoryOutput)

        replayed = await StepRunner(in_memory_redis_client, "wf-1", settings=settings).do(
            "getHistory", body, HistoryOutput
        )

        assert replayed == output

    @pytest.mark.asyncio
    async def test_step_retries_with_backoff(self, in_memory_redis_client, settings, no_sleep):
        runner = StepRunner(in_memory_redis_client, "wf-1", settings=settings, sleep=no_sleep)
        body, calls = counting_body(REFERENCE, failures=2)

        result = await runner.do("s", body, ReferenceDataOutput, retries=StepRetries(limit=2, delay_ms=1000))

        assert result == REFERENCE
        assert calls["count"] == 3
        assert no_sleep.await_args_list == [call(1.0), call(2.0)]

    @pytest.mark.asyncio
    async def test_exhausted_step_raises_step_failure(self, in_memory_redis_client, settings, no_sleep):
        # Arrange
        runner = StepRunner(in_memory_redis_client, "wf-1", settings=settings, sleep=no_sleep)
        body, calls = counting_body(REFERENCE, failures=10, error=RuntimeError("upstream exploded"))

        # Act
        with pytest.raises(StepFailure) as exc_info:
            await runner.do("streamAndDeliver", body, ReferenceDataOutput, retries=StepRetries(limit=1))

        # Assert
        error = exc_info.value
        assert error.message == "upstream exploded"
        assert error.details["step"] == "streamAndDeliver"
        assert error.details["attempts"] == 2
        assert isinstance(error.__cause__, RuntimeError)
        assert runner.completed_steps == 0
        assert runner.current_step == "streamAndDeliver"
        assert "workflow:wf-1:step:streamAndDeliver" not in in_memory_redis_client.data

    @pytest.mark.asyncio
    async def test_step_timeout(self, in_memory_redis_client, settings, no_sleep):
        runner = StepRunner(in_memory_redis_client, "wf-1", settings=settings, sleep=no_sleep)

        async def hangs():
            await asyncio.Event().wait()

        with pytest.raises(StepFailure) as exc_info:
            await runner.do("slow", hangs, ReferenceDataOutput, timeout_s=0.01)

        assert isinstance(exc_info.value.__cause__, StepTimeoutError)
        assert exc_info.value.details["error_type"] == "StepTimeoutError"

    @pytest.mark.asyncio
    async def test_unreadable_checkpoint_reruns_step(self, in_memory_redis_client, settings):
        in_memory_redis_client.data["workflow:wf-1:step:s"] = "{broken"
        runner = StepRunner(in_memory_redis_client, "wf-1", settings=settings)
        body, calls = counting_body(REFERENCE)

        result = await runner.do("s", body, ReferenceDataOutput)

        assert result == REFERENCE
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_checkpoint_write_failure_does_not_fail_step(self, in_memory_redis_client, settings):
        in_memory_redis_client.fail_writes = True
        runner = StepRunner(in_memory_redis_client, "wf-1", settings=settings)
        body, _ = counting_body(REFERENCE)

        assert await runner.do("s", body, ReferenceDataOutput) == REFERENCE
        assert runner.completed_steps == 1
