"""
Error Fingerprinting and Deduplicated Reporting

Failures are reported as GitHub issues, at most once per distinct error:

1. No ``GITHUB_TOKEN`` configured -> no-op.
2. Fingerprint the message. If ``error_reported:<fp>`` exists in the
   key-value store, stop.
3. Search the tracker for an open auto-reported issue carrying the
   fingerprint. If one exists, write the local key and stop.
4. Otherwise create the issue; on success write the local key.

Every step is wrapped: reporting never raises into the failure path that
called it. The reporter runs outside checkpointed steps, so step retries
never re-trigger it.
"""

import re

from sheetqa.clients.github_client import GitHubIssueClient
from sheetqa.core.config.constants import KV_KEY_ERROR_REPORTED, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.interfaces import IssueTracker, KeyValueStore
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.models import ErrorReport, HealthCheckReport

logger = get_logger(__name__)

# Applied in order: the specific patterns contain digits, so <N> goes last.
_FINGERPRINT_RULES = (
    (re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE), "<UUID>"),
    (re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}[.\dZ]*"), "<TIMESTAMP>"),
    (re.compile(r"\b[0-9a-f]{8,}\b", re.IGNORECASE), "<HEX>"),
    (re.compile(r"\d+"), "<N>"),
)


def generate_fingerprint(message: str) -> str:
    """
    Normalize an error message into a stable signature.

    Example:
        >>> generate_fingerprint("status 503 at 2026-02-14T10:00:00Z request abc12345")
        'status <N> at <TIMESTAMP> request <HEX>'
    """
    for pattern, placeholder in _FINGERPRINT_RULES:
        message = pattern.sub(placeholder, message)
    return message


def health_check_fingerprint(report: HealthCheckReport) -> str:
    return "health_check:" + ",".join(sorted(check.name for check in report.failed))


class ErrorReporter:
    """
    Two-layer deduplicating reporter.

    Usage:
        reporter = ErrorReporter(kv, tracker, log=run_logger)
        await reporter.report(error_report)
    """

    def __init__(self, kv: KeyValueStore, tracker: IssueTracker | None, settings=None, log=None):
        self.kv = kv
        self.tracker = tracker
        self.settings = settings or get_settings()
        self.log = log or logger

    @property
    def enabled(self) -> bool:
        return self.tracker is not None

    async def report(self, report: ErrorReport) -> bool:
        """
        Report a workflow failure unless it is a known duplicate.

        Returns:
            True if a new issue was created
        """
        if not self.enabled:
            log_stage(self.log, Stage.REPORTING, "GITHUB_TOKEN not set, skipping error report", level="debug")
            return False
        try:
            fingerprint = generate_fingerprint(report.error_message)
            return await self._report_once(fingerprint, lambda: self.tracker.create_issue(report, fingerprint))
        except Exception as e:
            log_stage(self.log, Stage.REPORTING, "Failed to report error (non-fatal)", level="warning", error=str(e))
            return False

    async def report_health_check(self, report: HealthCheckReport) -> bool:
        """Report failed dependency checks; same dedup rules as ``report``."""
        if not self.enabled or report.healthy:
            return False
        try:
            fingerprint = health_check_fingerprint(report)
            return await self._report_once(
                fingerprint, lambda: self.tracker.create_health_check_issue(report, fingerprint)
            )
        except Exception as e:
            log_stage(
                self.log, Stage.REPORTING, "Failed to report health check (non-fatal)", level="warning", error=str(e)
            )
            return False

    async def _report_once(self, fingerprint: str, create) -> bool:
        key = KV_KEY_ERROR_REPORTED.format(fingerprint=fingerprint)

        if await self.kv.get(key):
            log_stage(self.log, Stage.REPORTING, "Already reported (local cache hit)", level="debug", fingerprint=fingerprint)
            return False

        if await self.tracker.is_duplicate(fingerprint):
            log_stage(self.log, Stage.REPORTING, "Already reported (tracker search hit)", level="debug", fingerprint=fingerprint)
            await self._mark_reported(key)
            return False

        created = await create()
        if created:
            await self._mark_reported(key)
            log_stage(self.log, Stage.REPORTING, "Reported to GitHub Issues", fingerprint=fingerprint)
        return created

    async def _mark_reported(self, key: str) -> None:
        await self.kv.set(key, "1", ttl=self.settings.github.ERROR_REPORTED_TTL)


def create_error_reporter(kv: KeyValueStore, http, settings=None, log=None) -> ErrorReporter:
    """Build a reporter; without ``GITHUB_TOKEN`` it is a no-op."""
    settings = settings or get_settings()
    token = settings.github.GITHUB_TOKEN
    tracker = GitHubIssueClient(http, token, settings=settings, log=log) if token else None
    return ErrorReporter(kv, tracker, settings=settings, log=log)
