"""
Checkpointed Step Execution

A minimal durable-execution substrate: ``StepRunner.do(name, body)`` runs a
step body at most until it succeeds once, then memoizes its return value in
the key-value store under ``workflow:<instance_id>:step:<name>``. Running
the same instance again (after a crash or redelivery) replays committed
steps from their checkpoints and only executes steps that never committed.

Step bodies return a step-output model; checkpoints hold its camelCase JSON.
Retries and the hard timeout apply per step:

    attempt 1 -> fail -> sleep delay -> attempt 2 -> fail -> sleep 2*delay -> ...

A body that exhausts its attempts surfaces as ``StepFailure`` carrying the
step name and the last error's message.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sheetqa.core.config.constants import KV_KEY_STEP_CHECKPOINT, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import SheetQAError, StepFailure
from sheetqa.core.interfaces import KeyValueStore
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.models import StepOutput
from sheetqa.core.resilience import RetryConfig, retry_all, with_retry, with_timeout

logger = get_logger(__name__)

O = TypeVar("O", bound=StepOutput)


@dataclass(frozen=True)
class StepRetries:
    """Step-level retry policy: ``limit`` retries after the first attempt."""

    limit: int = 0
    delay_ms: int = 1000
    max_delay_ms: int = 30000

    def as_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.limit + 1,
            initial_delay_ms=self.delay_ms,
            max_delay_ms=self.max_delay_ms,
            backoff_multiplier=2,
        )


class StepRunner:
    """
    Runs and checkpoints the steps of one workflow instance.

    Usage:
        step = StepRunner(kv, run.instance_id, log=run_logger)
        out = await step.do("getHistory", load_history, HistoryOutput)
    """

    def __init__(
        self,
        kv: KeyValueStore,
        instance_id: str,
        settings=None,
        log=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.kv = kv
        self.instance_id = instance_id
        self.settings = settings or get_settings()
        self.log = log or logger
        self.sleep = sleep
        self.completed_steps = 0
        self.current_step: str | None = None

    def checkpoint_key(self, name: str) -> str:
        return KV_KEY_STEP_CHECKPOINT.format(instance_id=self.instance_id, step=name)

    async def do(
        self,
        name: str,
        body: Callable[[], Awaitable[O]],
        output: type[O],
        *,
        retries: StepRetries | None = None,
        timeout_s: float | None = None,
    ) -> O:
        """
        Run ``body`` once per instance and return its (possibly replayed) output.

        Raises:
            StepFailure: When every attempt of ``body`` failed
        """
        name = str(getattr(name, "value", name))
        self.current_step = name
        key = self.checkpoint_key(name)

        replayed = await self._load_checkpoint(key, output)
        if replayed is not None:
            log_stage(self.log, Stage.RETRY, "Replaying committed step", step=name)
            self.completed_steps += 1
            return replayed

        attempts = 0

        async def _attempt() -> O:
            nonlocal attempts
            attempts += 1
            if timeout_s is None:
                return await body()
            return await with_timeout(body(), timeout_s, f"Step {name} timed out after {timeout_s}s")

        policy = (retries or StepRetries()).as_retry_config()
        try:
            result = await with_retry(_attempt, policy, retry_all, sleep=self.sleep, log=self.log)
        except Exception as e:
            message = e.message if isinstance(e, SheetQAError) else str(e) or type(e).__name__
            raise StepFailure(
                message,
                details={"step": name, "attempts": attempts, "error_type": type(e).__name__},
            ) from e

        await self._save_checkpoint(key, result)
        self.completed_steps += 1
        return result

    async def _load_checkpoint(self, key: str, output: type[O]) -> O | None:
        try:
            raw = await self.kv.get(key)
            if raw is None:
                return None
            return output.model_validate(json.loads(raw))
        except Exception as e:
            log_stage(self.log, Stage.RETRY, "Ignoring unreadable checkpoint", level="warning", key=key, error=str(e))
            return None

    async def _save_checkpoint(self, key: str, result: StepOutput) -> None:
        try:
            await self.kv.set(
                key,
                json.dumps(result.to_checkpoint(), ensure_ascii=False),
                ttl=self.settings.cache.CACHE_CHECKPOINT_TTL,
            )
        except Exception as e:
            log_stage(self.log, Stage.RETRY, "Checkpoint write failed", level="warning", key=key, error=str(e))
