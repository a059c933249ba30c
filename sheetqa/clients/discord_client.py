"""
Discord Interaction Webhook Client

The delivery sink of a run. The deferred acknowledgment sent at admission
creates an "original" message; the run then edits it in place while the
answer streams (``edit_existing``) and can post a separate follow-up
(``post_new``).

Edits are best-effort: a failed or rate-limited edit returns False and the
streaming throttle simply tries again at its next gate. Posts raise on
failure so the caller can wrap them in ``with_retry``.
"""

import asyncio

import httpx

from sheetqa.clients.http import kind_from_httpx_error
from sheetqa.core.config.constants import DISCORD_MESSAGE_LIMIT, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import DeliveryError, kind_from_status
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.infrastructure.monitoring.metrics import NoOpMetricsRecorder

logger = get_logger(__name__)

DEFAULT_RATE_LIMIT_WAIT_S = 2.0
OVERFLOW_MARKER = "…"


def fit_message(content: str, limit: int = DISCORD_MESSAGE_LIMIT) -> str:
    """Truncate ``content`` to the platform's message length limit."""
    if len(content) <= limit:
        return content
    return content[: limit - len(OVERFLOW_MARKER)] + OVERFLOW_MARKER


def parse_retry_after(value: str | None) -> float:
    """Seconds to wait from a ``Retry-After`` header (default 2 s)."""
    if not value:
        return DEFAULT_RATE_LIMIT_WAIT_S
    try:
        return max(float(value), 0.0)
    except ValueError:
        return DEFAULT_RATE_LIMIT_WAIT_S


class DiscordWebhookClient:
    """
    Webhook sink bound to one interaction token.

    Usage:
        sink = DiscordWebhookClient(http, application_id, token, log=run_logger)
        await sink.edit_existing("> question\\npartial answer")
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        application_id: str,
        token: str,
        settings=None,
        log=None,
        metrics=None,
        sleep=asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.http = http
        self.endpoint = f"{self.settings.discord.DISCORD_API_BASE}/webhooks/{application_id}/{token}"
        self.log = log or logger
        self.metrics = metrics or NoOpMetricsRecorder()
        self._sleep = sleep

    async def post_new(self, content: str) -> bool:
        """
        Post a new message to the interaction webhook.

        Raises:
            DeliveryError: On transport failure or a non-2xx response
        """
        try:
            response = await self.http.post(self.endpoint, json={"content": fit_message(content)})
        except httpx.HTTPError as e:
            self.metrics.record_webhook("post", None)
            raise DeliveryError(f"Discord webhook POST failed: {e}", kind=kind_from_httpx_error(e)) from e

        self.metrics.record_webhook("post", response.status_code)
        if response.is_success:
            return True

        raise DeliveryError(
            f"Discord webhook POST returned HTTP {response.status_code}",
            kind=kind_from_status(response.status_code),
            details={"status_code": response.status_code},
        )

    async def edit_existing(self, content: str) -> bool:
        """
        Replace the content of the original deferred message.

        Never raises. On HTTP 429 waits out ``Retry-After`` before returning
        False so the next attempt is not rejected again.
        """
        try:
            response = await self.http.patch(
                f"{self.endpoint}/messages/@original", json={"content": fit_message(content)}
            )
        except httpx.HTTPError as e:
            self.metrics.record_webhook("edit", None)
            log_stage(self.log, Stage.THROTTLE, "Discord PATCH error", level="warning", error=str(e))
            return False

        self.metrics.record_webhook("edit", response.status_code)
        if response.is_success:
            return True

        if response.status_code == 429:
            wait_s = parse_retry_after(response.headers.get("Retry-After"))
            log_stage(self.log, Stage.THROTTLE, "Discord rate limited, waiting", level="warning", wait_ms=int(wait_s * 1000))
            await self._sleep(wait_s)
        else:
            log_stage(
                self.log, Stage.THROTTLE, "Discord PATCH failed", level="warning", status_code=response.status_code
            )
        return False
