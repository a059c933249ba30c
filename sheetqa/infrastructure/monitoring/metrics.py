#!/usr/bin/env python3
"""
Metrics Recorder with Prometheus Integration

Events recorded:
- gemini_api_call: model stream / summarizer calls
- workflow_complete: one per finished run (success or handled failure)
- kv_cache_access: reference cache reads
- discord_webhook: webhook posts and edits
- sheets_api_call: reference data fetches
- health_check: per-dependency probe results

Recording never raises: a failing metric write is logged and dropped so it
cannot disturb a workflow run.
"""

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, Info, generate_latest

from sheetqa.core.config.settings import get_settings
from sheetqa.core.logging import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

GEMINI_CALLS = Counter(
    "sheetqa_gemini_api_calls_total",
    "Total generative model calls",
    ["operation", "status"],  # stream / summarize, success / failure
)

GEMINI_LATENCY = Histogram(
    "sheetqa_gemini_api_duration_seconds",
    "Generative model call duration",
    ["operation"],
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0),
)

WORKFLOW_RUNS = Counter(
    "sheetqa_workflow_runs_total",
    "Total finished workflow runs",
    ["status", "from_cache"],
)

WORKFLOW_DURATION = Histogram(
    "sheetqa_workflow_duration_seconds",
    "Workflow run duration",
    ["status"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

WORKFLOW_STREAM_EDITS = Histogram(
    "sheetqa_workflow_stream_edits",
    "Message edits emitted per run",
    buckets=(1, 2, 5, 10, 20, 50),
)

CACHE_ACCESS = Counter(
    "sheetqa_kv_cache_access_total",
    "Reference cache accesses",
    ["operation", "result"],  # hit / miss / error
)

WEBHOOK_REQUESTS = Counter(
    "sheetqa_discord_webhook_requests_total",
    "Discord webhook requests",
    ["operation", "status_code"],
)

SHEETS_CALLS = Counter(
    "sheetqa_sheets_api_calls_total",
    "Spreadsheet fetches",
    ["status"],
)

SHEETS_LATENCY = Histogram(
    "sheetqa_sheets_api_duration_seconds",
    "Spreadsheet fetch duration",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

HEALTH_CHECKS = Counter(
    "sheetqa_health_checks_total",
    "Dependency health probe results",
    ["check", "status"],
)

APP_INFO = Info("sheetqa_app", "Application information")


def _status(success: bool) -> str:
    return "success" if success else "failure"


class MetricsRecorder:
    """
    Prometheus-backed metrics recorder.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_recorder()
        metrics.record_gemini_call(duration_ms=1200, success=True)
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        APP_INFO.info(
            {
                "version": self.settings.app.APP_VERSION,
                "environment": self.settings.app.ENVIRONMENT,
                "app_name": self.settings.app.APP_NAME,
            }
        )
        logger.info("Metrics recorder initialized", stage="M.0")

    def _safe(self, event: str, fn) -> None:
        try:
            fn()
        except Exception as e:
            logger.warning("Failed to record metric", stage="M.1", event=event, error=str(e))

    def record_gemini_call(self, duration_ms: float, success: bool, operation: str = "stream") -> None:
        def _record():
            GEMINI_CALLS.labels(operation=operation, status=_status(success)).inc()
            GEMINI_LATENCY.labels(operation=operation).observe(duration_ms / 1000)

        self._safe("gemini_api_call", _record)

    def record_workflow_complete(
        self, duration_ms: float, success: bool, from_cache: bool, edit_count: int = 0
    ) -> None:
        def _record():
            WORKFLOW_RUNS.labels(status=_status(success), from_cache=str(from_cache).lower()).inc()
            WORKFLOW_DURATION.labels(status=_status(success)).observe(duration_ms / 1000)
            if success:
                WORKFLOW_STREAM_EDITS.observe(edit_count)

        self._safe("workflow_complete", _record)

    def record_cache_access(self, hit: bool, operation: str = "get", success: bool = True) -> None:
        result = "error" if not success else ("hit" if hit else "miss")
        self._safe("kv_cache_access", lambda: CACHE_ACCESS.labels(operation=operation, result=result).inc())

    def record_webhook(self, operation: str, status_code: int | None) -> None:
        code = str(status_code) if status_code is not None else "error"
        self._safe("discord_webhook", lambda: WEBHOOK_REQUESTS.labels(operation=operation, status_code=code).inc())

    def record_sheets_call(self, duration_ms: float, success: bool) -> None:
        def _record():
            SHEETS_CALLS.labels(status=_status(success)).inc()
            SHEETS_LATENCY.observe(duration_ms / 1000)

        self._safe("sheets_api_call", _record)

    def record_health_check(self, check: str, healthy: bool) -> None:
        status = "healthy" if healthy else "unhealthy"
        self._safe("health_check", lambda: HEALTH_CHECKS.labels(check=check, status=status).inc())

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


class NoOpMetricsRecorder(MetricsRecorder):
    """Recorder that drops every event (tests, collaborators built without metrics)."""

    def __init__(self, settings=None):
        pass

    def _safe(self, event: str, fn) -> None:
        return None


# Global metrics recorder
_metrics: MetricsRecorder | None = None


def get_metrics_recorder() -> MetricsRecorder:
    """Get global metrics recorder."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRecorder()
    return _metrics
