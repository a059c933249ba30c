"""
Bounded Retry with Exponential Backoff

Every external call site (spreadsheet, model, webhook, issue tracker) goes
through ``with_retry``. The helper is a thin policy layer over tenacity:

    delay before retry k (0-based failure index) = min(initial * multiplier**k, max)

MECHANISM OF ACTION:
-------------------
1.  Call ``operation()``.
2.  On failure ask ``should_retry(error)``. Call sites pass a predicate such as
    ``is_transient`` that switches on the ``ErrorKind`` tag the adapter
    attached, never on message substrings.
3.  If allowed and attempts remain, suspend the calling coroutine for the
    backoff delay (``asyncio.sleep``: other runs keep going) and try again.
4.  Otherwise re-raise the last error unchanged. A terminal failure is never
    swallowed here.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from sheetqa.core.config.constants import (
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_INITIAL_DELAY_MS,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY_MS,
    Stage,
)
from sheetqa.core.exceptions import UpstreamError
from sheetqa.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy. Defaults: 3 attempts, 1000 ms initial, 10000 ms cap, x2."""

    max_attempts: int = RETRY_MAX_ATTEMPTS
    initial_delay_ms: int = RETRY_INITIAL_DELAY_MS
    max_delay_ms: int = RETRY_MAX_DELAY_MS
    backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER

    def delay_ms(self, attempt_index: int) -> float:
        """Backoff before the retry that follows failure number ``attempt_index`` (0-based)."""
        return min(self.initial_delay_ms * self.backoff_multiplier**attempt_index, self.max_delay_ms)


def retry_all(error: BaseException) -> bool:
    return True


def is_transient(error: BaseException) -> bool:
    """
    Retry predicate for transient failures.

    Rate limits, timeouts, network and server errors are retried; client,
    auth and invalid-response errors are not.
    """
    if isinstance(error, UpstreamError):
        return error.is_transient
    return isinstance(error, (TimeoutError, ConnectionError))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    should_retry: Callable[[BaseException], bool] = retry_all,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    log=None,
) -> T:
    """
    Run ``operation`` with bounded retries.

    Args:
        operation: Zero-argument coroutine function to call
        config: Retry policy (defaults to RetryConfig())
        should_retry: Predicate deciding whether an error is worth retrying
        sleep: Awaitable sleep used between attempts (seconds)
        log: Optional request-scoped logger

    Returns:
        The operation's result

    Raises:
        The last error raised by ``operation``
    """
    config = config or RetryConfig()
    log = log or logger

    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "Retrying after failure",
            stage=Stage.RETRY.value,
            attempt=retry_state.attempt_number,
            max_attempts=config.max_attempts,
            delay_ms=round(retry_state.next_action.sleep * 1000) if retry_state.next_action else None,
            error=str(error),
            error_type=type(error).__name__,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.initial_delay_ms / 1000,
            exp_base=config.backoff_multiplier,
            max=config.max_delay_ms / 1000,
        ),
        retry=retry_if_exception(should_retry),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(operation)
