"""
Dependency Health Checks

Three probes run in parallel:

- ``kv``: a GET of ``__health_check__`` against the key-value store
- ``gemini``: the model listing endpoint, authenticated with the API key
- ``google_sa``: shape check of the service account JSON (no token exchange)

Every probe result is recorded as a metric. Failures are reported through
the error reporter with fingerprint ``health_check:<sorted failed names>``.
"""

import asyncio
import time

import httpx

from sheetqa.clients.sheets_client import parse_service_account
from sheetqa.core.config.constants import KV_KEY_HEALTH_PROBE, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import SheetQAError
from sheetqa.core.interfaces import KeyValueStore
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.models import HealthCheckReport, HealthCheckResult
from sheetqa.infrastructure.monitoring.metrics import NoOpMetricsRecorder
from sheetqa.reporting.error_reporter import ErrorReporter

logger = get_logger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _describe(error: Exception) -> str:
    return error.message if isinstance(error, SheetQAError) else str(error) or type(error).__name__


class HealthChecker:
    """
    Runs the dependency probes.

    STAGE-H: Health check

    Usage:
        checker = HealthChecker(kv, http, reporter=reporter, metrics=metrics)
        report = await checker.run()
    """

    def __init__(
        self,
        kv: KeyValueStore,
        http: httpx.AsyncClient,
        reporter: ErrorReporter | None = None,
        settings=None,
        metrics=None,
        log=None,
    ):
        self.kv = kv
        self.http = http
        self.reporter = reporter
        self.settings = settings or get_settings()
        self.metrics = metrics or NoOpMetricsRecorder()
        self.log = log or logger

    async def check_kv(self) -> HealthCheckResult:
        start = time.perf_counter()
        try:
            await self.kv.get(KV_KEY_HEALTH_PROBE)
        except Exception as e:
            return HealthCheckResult(name="kv", healthy=False, duration_ms=_elapsed_ms(start), error=_describe(e))
        return HealthCheckResult(name="kv", healthy=True, duration_ms=_elapsed_ms(start))

    async def check_gemini(self) -> HealthCheckResult:
        start = time.perf_counter()
        try:
            response = await self.http.get(
                self.settings.gemini.GEMINI_MODELS_URL, params={"key": self.settings.gemini.GEMINI_API_KEY}
            )
        except httpx.HTTPError as e:
            return HealthCheckResult(name="gemini", healthy=False, duration_ms=_elapsed_ms(start), error=str(e))
        if not response.is_success:
            return HealthCheckResult(
                name="gemini", healthy=False, duration_ms=_elapsed_ms(start), error=f"HTTP {response.status_code}"
            )
        return HealthCheckResult(name="gemini", healthy=True, duration_ms=_elapsed_ms(start))

    async def check_google_sa(self) -> HealthCheckResult:
        start = time.perf_counter()
        try:
            parse_service_account(self.settings.sheets.GOOGLE_SERVICE_ACCOUNT)
        except SheetQAError as e:
            return HealthCheckResult(name="google_sa", healthy=False, duration_ms=_elapsed_ms(start), error=e.message)
        return HealthCheckResult(name="google_sa", healthy=True, duration_ms=_elapsed_ms(start))

    async def run(self) -> HealthCheckReport:
        """Run every probe, record metrics and report failures."""
        results = await asyncio.gather(self.check_kv(), self.check_gemini(), self.check_google_sa())
        report = HealthCheckReport(results=list(results))

        for result in report.results:
            self.metrics.record_health_check(result.name, result.healthy)

        if report.healthy:
            log_stage(self.log, Stage.HEALTH, "All health checks passed")
            return report

        log_stage(
            self.log,
            Stage.HEALTH,
            "Health check failures detected",
            level="warning",
            failed=[r.name for r in report.failed],
        )
        if self.reporter is not None:
            await self.reporter.report_health_check(report)
        return report
