#!/usr/bin/env python3
"""
Answer-Question Workflow

The fixed, strictly sequential pipeline run once per inbound question:

    1. getReferenceData   cache hit, or fetch the spreadsheet and cache it
    2. getHistory         load the TTL-bounded conversation history
    3. streamAndDeliver   stream the model answer through the throttle into
                          the deferred message (step retries + hard timeout)
    4. saveHistory        best-effort persist of history + this exchange

Each step goes through ``StepRunner.do`` and is checkpointed. Any exception
escaping steps 1-4 enters the failure path, which runs outside every step:

    ErrorReport -> ErrorReporter.report (deduplicated)
                -> failure message posted to the sink (bounded retry)

Nothing escapes ``run``: it always returns a ``WorkflowOutcome``.

Architectural Decision: dependency injection per run
- ``create_workflow_dependencies`` builds fresh adapters for every run
- every adapter receives the run's request-scoped logger
- tests pass in-memory fakes for each collaborator
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from sheetqa.clients.discord_client import DiscordWebhookClient
from sheetqa.clients.gemini_client import (
    EMPTY_RESPONSE_MESSAGE,
    GeminiClient,
    build_prompt,
    build_summary_prompt,
)
from sheetqa.clients.http import create_http_client
from sheetqa.clients.sheets_client import SheetsClient
from sheetqa.core.config.constants import USER_HISTORY_PREFIX, ErrorKind, Stage, StepName
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import CacheWriteError, ModelError, SheetQAError
from sheetqa.core.interfaces import DeliverySink, KeyValueStore, ModelSource, ReferenceSource
from sheetqa.core.logging import bind_request_logger, clear_request_id, get_logger, log_stage, set_request_id
from sheetqa.core.models import (
    ErrorReport,
    HistoryEntry,
    HistoryOutput,
    ReferenceDataOutput,
    SaveHistoryOutput,
    StreamOutput,
    WorkflowOutcome,
    WorkflowRun,
)
from sheetqa.core.resilience import RetryConfig, is_transient, retry_all, with_retry
from sheetqa.infrastructure.cache.conversation_store import ConversationStore
from sheetqa.infrastructure.monitoring.metrics import MetricsRecorder, NoOpMetricsRecorder
from sheetqa.reporting.error_reporter import ErrorReporter, create_error_reporter
from sheetqa.streaming.throttle import StreamingThrottle, ThrottleConfig, monotonic_ms, render_message
from sheetqa.workflows.durable import StepRetries, StepRunner

logger = get_logger(__name__)

FAILURE_POST_RETRY = RetryConfig(max_attempts=3, initial_delay_ms=1000, max_delay_ms=4000)


@dataclass
class WorkflowDependencies:
    """Collaborators of one run. Never shared between runs."""

    kv: KeyValueStore
    store: ConversationStore
    reference_source: ReferenceSource
    model: ModelSource
    sink: DeliverySink
    reporter: ErrorReporter
    log: object
    metrics: MetricsRecorder


def create_workflow_dependencies(
    run: WorkflowRun,
    kv: KeyValueStore,
    http: httpx.AsyncClient,
    settings=None,
    metrics: MetricsRecorder | None = None,
) -> WorkflowDependencies:
    """Build the adapters for one run, all bound to the run's logger."""
    settings = settings or get_settings()
    metrics = metrics or NoOpMetricsRecorder()
    log = bind_request_logger("sheetqa.workflow", run.request_id, instance_id=run.instance_id)

    return WorkflowDependencies(
        kv=kv,
        store=ConversationStore(kv, settings=settings, log=log, metrics=metrics),
        reference_source=SheetsClient(http, settings=settings, log=log, metrics=metrics),
        model=GeminiClient(settings=settings, log=log, metrics=metrics),
        sink=DiscordWebhookClient(
            http, settings.discord.DISCORD_APPLICATION_ID, run.token, settings=settings, log=log, metrics=metrics
        ),
        reporter=create_error_reporter(kv, http, settings=settings, log=log),
        log=log,
        metrics=metrics,
    )


class AnswerQuestionWorkflow:
    """
    Orchestrates one run.

    Usage:
        deps = create_workflow_dependencies(run, kv, http)
        outcome = await AnswerQuestionWorkflow(deps).run(run)
    """

    def __init__(
        self,
        deps: WorkflowDependencies,
        settings=None,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.deps = deps
        self.settings = settings or get_settings()
        self.log = deps.log
        self.clock = clock
        self.sleep = sleep

    async def run(self, run: WorkflowRun) -> WorkflowOutcome:
        """Execute steps 1-4, or the failure path. Never raises."""
        start = time.perf_counter()
        step = StepRunner(self.deps.kv, run.instance_id, settings=self.settings, log=self.log, sleep=self.sleep)
        log_stage(self.log, Stage.ADMISSION, "Workflow started", question_length=len(run.message))

        try:
            reference = await step.do(StepName.GET_REFERENCE_DATA, self._get_reference_data, ReferenceDataOutput)
            history = await step.do(StepName.GET_HISTORY, self._get_history, HistoryOutput)

            streaming = self.settings.streaming
            streamed = await step.do(
                StepName.STREAM_AND_DELIVER,
                lambda: self._stream_and_deliver(run, reference, history),
                StreamOutput,
                retries=StepRetries(limit=streaming.STREAM_STEP_RETRIES, delay_ms=streaming.STREAM_STEP_RETRY_DELAY_MS),
                timeout_s=streaming.STREAM_STEP_TIMEOUT,
            )

            await step.do(
                StepName.SAVE_HISTORY, lambda: self._save_history(streamed.updated_history), SaveHistoryOutput
            )

        except Exception as e:
            duration_ms = _elapsed_ms(start)
            await self._handle_failure(run, e, step, duration_ms)
            outcome = WorkflowOutcome(
                success=False,
                duration_ms=duration_ms,
                step_count=step.completed_steps,
                error_message=_user_message(e),
            )
        else:
            outcome = WorkflowOutcome(
                success=True,
                duration_ms=_elapsed_ms(start),
                step_count=step.completed_steps,
                from_cache=reference.from_cache,
                edit_count=streamed.edit_count,
            )
            log_stage(
                self.log,
                Stage.HISTORY_SAVE,
                "Workflow completed",
                duration_ms=outcome.duration_ms,
                from_cache=outcome.from_cache,
                edit_count=outcome.edit_count,
            )

        self.deps.metrics.record_workflow_complete(
            outcome.duration_ms, outcome.success, outcome.from_cache, outcome.edit_count
        )
        return outcome

    # =========================================================================
    # Steps
    # =========================================================================

    async def _get_reference_data(self) -> ReferenceDataOutput:
        """STAGE-1: Reference data (cache or spreadsheet)."""
        cached = await self.deps.store.get_reference_cache()
        if cached is not None:
            log_stage(self.log, Stage.REFERENCE_DATA, "Reference cache hit")
            return ReferenceDataOutput(data=cached.data, description=cached.description, from_cache=True)

        log_stage(self.log, Stage.REFERENCE_DATA, "Reference cache miss, fetching spreadsheet")
        source = self.deps.reference_source
        credentials = self.settings.sheets.GOOGLE_SERVICE_ACCOUNT
        token = await with_retry(
            lambda: source.authenticate(credentials), should_retry=is_transient, sleep=self.sleep, log=self.log
        )
        reference = await with_retry(
            lambda: source.fetch(token), should_retry=is_transient, sleep=self.sleep, log=self.log
        )

        try:
            await self.deps.store.save_reference_cache(reference.data, reference.description)
        except CacheWriteError as e:
            log_stage(self.log, Stage.REFERENCE_DATA, "Failed to save cache (non-fatal)", level="warning", error=e.message)

        return ReferenceDataOutput(data=reference.data, description=reference.description, from_cache=False)

    async def _get_history(self) -> HistoryOutput:
        """STAGE-2: Conversation history."""
        history = await self.deps.store.get_history()
        log_stage(self.log, Stage.HISTORY_LOAD, "History loaded", entries=len(history))
        return HistoryOutput(history=history)

    async def _stream_and_deliver(
        self, run: WorkflowRun, reference: ReferenceDataOutput, history: HistoryOutput
    ) -> StreamOutput:
        """STAGE-3: Stream the answer into the deferred message."""
        model = self.deps.model
        throttle = StreamingThrottle(
            self.deps.sink,
            lambda thinking: model.generate_once(build_summary_prompt(thinking)),
            run.message,
            ThrottleConfig.from_settings(self.settings),
            clock=self.clock,
            sleep=self.sleep,
            log=self.log,
        )

        prompt = build_prompt(reference.data, reference.description, run.message)
        async for chunk in model.generate_stream(prompt, history.history):
            await throttle.on_chunk(chunk.text, chunk.phase)

        if not throttle.response_text.strip():
            log_stage(self.log, Stage.STREAM_AND_DELIVER, "Empty text from streaming response", level="error")
            raise ModelError(EMPTY_RESPONSE_MESSAGE, kind=ErrorKind.INVALID_RESPONSE)

        final_text = await throttle.finish()
        updated_history = [
            *history.history,
            HistoryEntry(role="user", text=f"{USER_HISTORY_PREFIX}{run.message}"),
            HistoryEntry(role="model", text=final_text),
        ]
        return StreamOutput(final_text=final_text, updated_history=updated_history, edit_count=throttle.edit_count)

    async def _save_history(self, entries: list[HistoryEntry]) -> SaveHistoryOutput:
        """STAGE-4: Persist history. Failure loses continuity, never the answer."""
        try:
            await self.deps.store.save_history(entries)
        except CacheWriteError as e:
            log_stage(self.log, Stage.HISTORY_SAVE, "Failed to save history (non-fatal)", level="warning", error=e.message)
            return SaveHistoryOutput(success=False)
        return SaveHistoryOutput(success=True)

    # =========================================================================
    # Failure path
    # =========================================================================

    async def _handle_failure(self, run: WorkflowRun, error: Exception, step: StepRunner, duration_ms: int) -> None:
        """STAGE-5: Report (deduplicated), then tell the user. Swallows everything."""
        reason = _user_message(error)
        failed_step = step.current_step
        if isinstance(error, SheetQAError):
            failed_step = error.details.get("step", failed_step)
        log_stage(
            self.log,
            Stage.FAILURE,
            "Workflow failed",
            level="error",
            error=reason,
            error_type=type(error).__name__,
            step=failed_step,
            steps_completed=step.completed_steps,
        )

        report = ErrorReport(
            error_message=reason,
            request_id=run.request_id,
            workflow_id=run.instance_id,
            step=failed_step,
            duration_ms=duration_ms,
            step_count=step.completed_steps,
        )
        await deliver_failure(
            run, report, self.deps.reporter, self.deps.sink, settings=self.settings, log=self.log, sleep=self.sleep
        )


async def deliver_failure(
    run: WorkflowRun,
    report: ErrorReport,
    reporter: ErrorReporter,
    sink: DeliverySink,
    settings=None,
    log=None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Report (deduplicated), then post the failure message. Never raises."""
    settings = settings or get_settings()
    log = log or logger
    try:
        await reporter.report(report)
    except Exception as e:
        log_stage(log, Stage.REPORTING, "Error reporting failed (non-fatal)", level="warning", error=str(e))

    content = render_message(run.message, f"{settings.streaming.ERROR_MESSAGE_PREFIX}{report.error_message}")
    try:
        await with_retry(lambda: sink.post_new(content), FAILURE_POST_RETRY, retry_all, sleep=sleep, log=log)
    except Exception as e:
        log_stage(log, Stage.FAILURE, "Failure message delivery failed", level="error", error=str(e))


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _user_message(error: Exception) -> str:
    if isinstance(error, SheetQAError):
        return error.message
    return str(error) or "Unknown error occurred"


async def run_answer_question(
    run: WorkflowRun,
    kv: KeyValueStore,
    settings=None,
    metrics: MetricsRecorder | None = None,
) -> WorkflowOutcome:
    """
    Background entry point scheduled by the admission route.

    Owns the run's HTTP client and request-id context.
    """
    settings = settings or get_settings()
    set_request_id(run.request_id)
    try:
        timeout = max(settings.discord.DISCORD_TIMEOUT, settings.sheets.SHEETS_TIMEOUT)
        async with create_http_client(timeout) as http:
            start = time.perf_counter()
            try:
                deps = create_workflow_dependencies(run, kv, http, settings=settings, metrics=metrics)
            except Exception as e:
                return await _fail_setup(run, kv, http, e, _elapsed_ms(start), settings)
            return await AnswerQuestionWorkflow(deps, settings=settings).run(run)
    finally:
        clear_request_id()


async def _fail_setup(
    run: WorkflowRun, kv: KeyValueStore, http: httpx.AsyncClient, error: Exception, duration_ms: int, settings
) -> WorkflowOutcome:
    """Failure path for a run whose collaborators could not be built."""
    log = bind_request_logger("sheetqa.workflow", run.request_id, instance_id=run.instance_id)
    reason = _user_message(error)
    log_stage(
        log, Stage.FAILURE, "Workflow setup failed", level="error", error=reason, error_type=type(error).__name__
    )
    report = ErrorReport(
        error_message=reason,
        request_id=run.request_id,
        workflow_id=run.instance_id,
        step="setup",
        duration_ms=duration_ms,
        step_count=0,
    )
    sink = DiscordWebhookClient(http, settings.discord.DISCORD_APPLICATION_ID, run.token, settings=settings, log=log)
    reporter = create_error_reporter(kv, http, settings=settings, log=log)
    await deliver_failure(run, report, reporter, sink, settings=settings, log=log)
    return WorkflowOutcome(success=False, duration_ms=duration_ms, step_count=0, error_message=reason)
