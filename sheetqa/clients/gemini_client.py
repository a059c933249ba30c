#!/usr/bin/env python3
"""
Google Gemini Model Source

Streams answers from Gemini with thought summaries enabled and maps every
part of every chunk to a ``ModelChunk(text, phase)``:

- ``part.thought is True`` -> ``Phase.THINKING``
- anything else (flag False or absent) -> ``Phase.RESPONSE``

Also serves the one-shot summarizer call the streaming throttle uses to
condense thinking text.

Architectural Decision: google-genai SDK (async ``client.aio`` surface)
- Per-part ``thought`` flag when ``include_thoughts`` is on
- Native multi-turn ``contents`` for conversation history
- SDK errors carry an HTTP status ``code`` that maps onto ErrorKind
"""

import time
from collections.abc import AsyncIterator

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from sheetqa.clients.http import kind_from_httpx_error
from sheetqa.core.config.constants import USER_HISTORY_PREFIX, ErrorKind, Phase, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import ModelError, kind_from_status
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.models import HistoryEntry, ModelChunk
from sheetqa.core.resilience import RetryConfig, is_transient, with_retry
from sheetqa.infrastructure.monitoring.metrics import NoOpMetricsRecorder

logger = get_logger(__name__)

STREAM_OPEN_RETRY = RetryConfig(max_attempts=2, initial_delay_ms=500, max_delay_ms=2000)

_USER_MESSAGES = {
    ErrorKind.RATE_LIMITED: "API使用制限に達しました。しばらく待ってから再度お試しください。",
    ErrorKind.AUTH: "API認証エラーが発生しました。",
}
_DEFAULT_USER_MESSAGE = "AI APIへのリクエストに失敗しました。"
EMPTY_RESPONSE_MESSAGE = "AIから有効な応答が得られませんでした。"


# ============================================================================
# Prompts
# ============================================================================


def build_system_prompt(data: str, description: str) -> str:
    return f"\n{description}\n---\nスプレッドシートの情報:\n{data}\n---\n思考過程は必ず日本語で行ってください。\n"


def build_prompt(data: str, description: str, question: str) -> str:
    """Final user turn: reference context followed by the question."""
    return f"{build_system_prompt(data, description)}\n{USER_HISTORY_PREFIX}{question}"


def build_summary_prompt(thinking: str) -> str:
    return (
        "以下はAIの思考過程です。現在何を検討しているかを日本語の短い一文(40文字以内)で要約してください。"
        "要約文のみを出力してください。\n\n"
        f"{thinking}"
    )


# ============================================================================
# Error mapping
# ============================================================================


def classify_error(error: Exception) -> ErrorKind:
    if isinstance(error, genai_errors.APIError):
        code = getattr(error, "code", None)
        return kind_from_status(code) if isinstance(code, int) else ErrorKind.UNKNOWN
    if isinstance(error, httpx.HTTPError):
        return kind_from_httpx_error(error)
    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(error, ConnectionError):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def to_model_error(error: Exception) -> ModelError:
    if isinstance(error, ModelError):
        return error
    kind = classify_error(error)
    return ModelError(
        _USER_MESSAGES.get(kind, _DEFAULT_USER_MESSAGE),
        kind=kind,
        details={"original_error": type(error).__name__, "original_message": str(error)},
    )


def chunk_parts(chunk: types.GenerateContentResponse) -> list[ModelChunk]:
    """Split one streamed response chunk into phase-tagged text pieces."""
    candidates = chunk.candidates or []
    if not candidates or candidates[0].content is None:
        return []
    pieces = []
    for part in candidates[0].content.parts or []:
        if part.text:
            phase = Phase.THINKING if getattr(part, "thought", None) is True else Phase.RESPONSE
            pieces.append(ModelChunk(text=part.text, phase=phase))
    return pieces


class GeminiClient:
    """
    Generative model source.

    Usage:
        model = GeminiClient(log=run_logger)
        async for chunk in model.generate_stream(prompt, history):
            ...
    """

    def __init__(self, api_key: str | None = None, settings=None, log=None, metrics=None, client=None):
        self.settings = settings or get_settings()
        self._client = client
        self._api_key = api_key
        self.log = log or logger
        self.metrics = metrics or NoOpMetricsRecorder()

    @property
    def client(self) -> genai.Client:
        """SDK client, built on first use."""
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key or self.settings.gemini.GEMINI_API_KEY)
        return self._client

    def _stream_config(self) -> types.GenerateContentConfig:
        gemini = self.settings.gemini
        return types.GenerateContentConfig(
            temperature=gemini.GEMINI_TEMPERATURE,
            top_p=0.95,
            top_k=40,
            max_output_tokens=gemini.GEMINI_MAX_OUTPUT_TOKENS,
            response_mime_type="text/plain",
            thinking_config=types.ThinkingConfig(include_thoughts=True),
        )

    @staticmethod
    def _contents(prompt: str, history: list[HistoryEntry]) -> list[types.Content]:
        contents = [types.Content(role=entry.role, parts=[types.Part(text=entry.text)]) for entry in history]
        contents.append(types.Content(role="user", parts=[types.Part(text=prompt)]))
        return contents

    async def generate_stream(self, prompt: str, history: list[HistoryEntry]) -> AsyncIterator[ModelChunk]:
        """
        Stream phase-tagged chunks.

        Opening the stream is retried once on transient errors; failures while
        iterating are not retried here.

        Raises:
            ModelError: Tagged with the ErrorKind of the underlying failure
        """
        model = self.settings.gemini.GEMINI_MODEL
        log_stage(self.log, Stage.STREAM_AND_DELIVER, "Gemini streaming request starting", model=model)
        start = time.perf_counter()
        success = False

        async def _open():
            try:
                return await self.client.aio.models.generate_content_stream(
                    model=model,
                    contents=self._contents(prompt, history),
                    config=self._stream_config(),
                )
            except Exception as e:
                raise to_model_error(e) from e

        try:
            stream = await with_retry(_open, STREAM_OPEN_RETRY, is_transient, log=self.log)
            try:
                async for chunk in stream:
                    for piece in chunk_parts(chunk):
                        yield piece
            except ModelError:
                raise
            except Exception as e:
                raise to_model_error(e) from e
            success = True
        except ModelError as e:
            log_stage(
                self.log,
                Stage.STREAM_AND_DELIVER,
                "Gemini streaming request failed",
                level="error",
                kind=e.kind.value,
                error=e.details.get("original_message", e.message),
            )
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.record_gemini_call(duration_ms, success=success, operation="stream")
            if success:
                log_stage(
                    self.log, Stage.STREAM_AND_DELIVER, "Gemini streaming completed", duration_ms=round(duration_ms)
                )

    async def generate_once(self, prompt: str) -> str:
        """
        One-shot, non-streaming generation with the summary model.

        Raises:
            ModelError: Tagged with the ErrorKind of the underlying failure
        """
        start = time.perf_counter()
        try:
            response = await self.client.aio.models.generate_content(
                model=self.settings.gemini.GEMINI_SUMMARY_MODEL,
                contents=prompt,
                config=types.GenerateContentConfig(temperature=0.2, max_output_tokens=256),
            )
        except Exception as e:
            self.metrics.record_gemini_call((time.perf_counter() - start) * 1000, success=False, operation="summarize")
            raise to_model_error(e) from e

        self.metrics.record_gemini_call((time.perf_counter() - start) * 1000, success=True, operation="summarize")
        return (response.text or "").strip()
