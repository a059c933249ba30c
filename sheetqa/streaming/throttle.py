"""
Streaming Throttle

Turns a high-frequency stream of phase-tagged text chunks into a
low-frequency series of "replace the displayed message with X" edits
against a rate-limited sink.

State machine
-------------

    AWAITING_THINKING --(first response chunk: forced edit)--> AWAITING_RESPONSE
    AWAITING_RESPONSE --(finish: final edit)--> DONE
    AWAITING_THINKING --(finish: final edit)--> DONE

- Thinking chunks accumulate in a thinking buffer. While awaiting thinking,
  once ``thinking_interval_ms`` has passed since the last edit and at least
  ``thinking_min_chars`` new characters arrived, the buffer is summarized
  and shown as ``":thought_balloon: <summary>"``. Summarizer failures show
  the fallback phrase instead; they never reach the stream.
- The first response chunk while awaiting thinking bypasses both gates and
  shows the response text so far.
- While awaiting response, an edit is emitted once ``response_interval_ms``
  has passed and at least ``response_min_chars`` new characters arrived.
- ``finish`` always performs one final edit containing only the response
  text. Thinking text never appears in it.

A failed intermediate edit does not advance ``last_emitted_length``: the
same content becomes eligible again at the next gate pass.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from sheetqa.core.config.constants import THINKING_MARKER, ErrorKind, Phase, Stage, ThrottleState
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import DeliveryError
from sheetqa.core.interfaces import DeliverySink
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.resilience import RetryConfig, is_transient, with_retry

logger = get_logger(__name__)

SUMMARY_RETRY = RetryConfig(max_attempts=2, initial_delay_ms=500, max_delay_ms=1000)
FINAL_EDIT_RETRY = RetryConfig(max_attempts=3, initial_delay_ms=1000, max_delay_ms=4000)


def monotonic_ms() -> float:
    return time.monotonic() * 1000


def coerce_phase(phase) -> Phase:
    """Unknown or absent phase flags count as response text."""
    try:
        return Phase(phase)
    except ValueError:
        return Phase.RESPONSE


def render_message(question: str, body: str) -> str:
    """Quote the question above the body."""
    return f"> {question}\n{body}"


@dataclass(frozen=True)
class ThrottleConfig:
    response_interval_ms: int = 1500
    response_min_chars: int = 50
    thinking_interval_ms: int = 1000
    thinking_min_chars: int = 200
    fallback_text: str = "考え中..."

    def __post_init__(self):
        if self.thinking_interval_ms > self.response_interval_ms:
            raise ValueError("thinking_interval_ms must be <= response_interval_ms")

    @classmethod
    def from_settings(cls, settings=None) -> "ThrottleConfig":
        streaming = (settings or get_settings()).streaming
        return cls(
            response_interval_ms=streaming.STREAM_RESPONSE_INTERVAL_MS,
            response_min_chars=streaming.STREAM_RESPONSE_MIN_CHARS,
            thinking_interval_ms=streaming.STREAM_THINKING_INTERVAL_MS,
            thinking_min_chars=streaming.STREAM_THINKING_MIN_CHARS,
            fallback_text=streaming.THINKING_FALLBACK_TEXT,
        )


@dataclass
class StreamAccumulator:
    """Run-scoped throttle state. Created at stream start, never persisted."""

    phase: Phase = Phase.THINKING
    last_edit_at: float = 0.0
    last_emitted_length: dict[Phase, int] = field(
        default_factory=lambda: {Phase.THINKING: 0, Phase.RESPONSE: 0}
    )
    edit_count: int = 0
    thinking_text: str = ""
    response_text: str = ""

    def buffer(self, phase: Phase) -> str:
        return self.thinking_text if phase is Phase.THINKING else self.response_text

    def new_chars(self, phase: Phase) -> int:
        return len(self.buffer(phase)) - self.last_emitted_length[phase]


class StreamingThrottle:
    """
    Phase-aware edit throttle for one run.

    Usage:
        throttle = StreamingThrottle(sink, summarize, question, ThrottleConfig.from_settings())
        async for chunk in model.generate_stream(prompt, history):
            await throttle.on_chunk(chunk.text, chunk.phase)
        final_text = await throttle.finish()
    """

    def __init__(
        self,
        sink: DeliverySink,
        summarizer: Callable[[str], Awaitable[str]],
        question: str,
        config: ThrottleConfig | None = None,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log=None,
    ):
        self.sink = sink
        self.summarizer = summarizer
        self.question = question
        self.config = config or ThrottleConfig()
        self.clock = clock
        self.sleep = sleep
        self.log = log or logger
        self.state = ThrottleState.AWAITING_THINKING
        self.acc = StreamAccumulator(last_edit_at=clock())

    @property
    def edit_count(self) -> int:
        return self.acc.edit_count

    @property
    def response_text(self) -> str:
        return self.acc.response_text

    async def on_chunk(self, text: str, phase: Phase | None = Phase.RESPONSE) -> None:
        """Accumulate one chunk and emit an edit if its phase's gate opens."""
        if self.state is ThrottleState.DONE:
            raise RuntimeError("Throttle already finished")
        if not text:
            return
        phase = coerce_phase(phase)

        if phase is Phase.THINKING:
            self.acc.thinking_text += text
            if self.state is ThrottleState.AWAITING_THINKING and self._gate_open(Phase.THINKING):
                await self._emit_thinking()
            return

        self.acc.response_text += text
        self.acc.phase = Phase.RESPONSE
        if self.state is ThrottleState.AWAITING_THINKING:
            self.state = ThrottleState.AWAITING_RESPONSE
            log_stage(self.log, Stage.THROTTLE, "First response chunk, forcing transition edit", level="debug")
            await self._emit(Phase.RESPONSE, self.acc.response_text)
        elif self._gate_open(Phase.RESPONSE):
            await self._emit(Phase.RESPONSE, self.acc.response_text)

    async def finish(self) -> str:
        """
        Emit the final edit with the complete response text.

        Returns:
            The complete response text

        Raises:
            DeliveryError: If the final edit could not be delivered
        """
        final_text = self.acc.response_text
        content = render_message(self.question, final_text)

        async def _final_edit() -> bool:
            if not await self.sink.edit_existing(content):
                raise DeliveryError("Final message edit failed", kind=ErrorKind.NETWORK)
            return True

        await with_retry(_final_edit, FINAL_EDIT_RETRY, is_transient, sleep=self.sleep, log=self.log)
        self.acc.edit_count += 1
        self.acc.last_emitted_length[Phase.RESPONSE] = len(final_text)
        self.state = ThrottleState.DONE
        log_stage(
            self.log,
            Stage.THROTTLE,
            "Final edit delivered",
            edit_count=self.acc.edit_count,
            response_length=len(final_text),
        )
        return final_text

    # =========================================================================
    # Internals
    # =========================================================================

    def _gate_open(self, phase: Phase) -> bool:
        if phase is Phase.THINKING:
            interval, min_chars = self.config.thinking_interval_ms, self.config.thinking_min_chars
        else:
            interval, min_chars = self.config.response_interval_ms, self.config.response_min_chars
        elapsed = self.clock() - self.acc.last_edit_at
        return elapsed >= interval and self.acc.new_chars(phase) >= min_chars

    async def _summarize(self, thinking: str) -> str:
        try:
            summary = await with_retry(
                lambda: self.summarizer(thinking), SUMMARY_RETRY, is_transient, sleep=self.sleep, log=self.log
            )
        except Exception as e:
            log_stage(self.log, Stage.THROTTLE, "Thinking summary failed, using fallback", level="warning", error=str(e))
            return self.config.fallback_text
        return summary.strip() if summary and summary.strip() else self.config.fallback_text

    async def _emit_thinking(self) -> None:
        thinking = self.acc.thinking_text
        summary = await self._summarize(thinking)
        await self._emit(Phase.THINKING, f"{THINKING_MARKER} {summary}", emitted_length=len(thinking))

    async def _emit(self, phase: Phase, body: str, emitted_length: int | None = None) -> bool:
        self.acc.last_edit_at = self.clock()
        ok = await self.sink.edit_existing(render_message(self.question, body))
        if ok:
            self.acc.edit_count += 1
            self.acc.last_emitted_length[phase] = (
                emitted_length if emitted_length is not None else len(self.acc.buffer(phase))
            )
        else:
            log_stage(self.log, Stage.THROTTLE, "Intermediate edit failed, will retry", level="debug", phase=phase.value)
        return ok
