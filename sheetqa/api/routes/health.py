"""
Health and Metrics Endpoints

- ``GET /api/v1/health``: runs the dependency checks; 200 when every check
  passes, 503 otherwise. Failures are reported through the error reporter.
- ``GET /metrics``: Prometheus exposition of the process metrics.
"""

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sheetqa.api.dependencies import KVDep, MetricsDep, SettingsDep
from sheetqa.clients.http import create_http_client
from sheetqa.core.models import HealthCheckResult
from sheetqa.reporting.error_reporter import create_error_reporter
from sheetqa.services.health_service import HealthChecker

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str  # "healthy" or "unhealthy"
    timestamp: str
    checks: list[HealthCheckResult]


@router.get("/api/v1/health", response_model=HealthResponse)
async def health_check(kv: KVDep, metrics: MetricsDep, settings: SettingsDep):
    """Run all dependency probes."""
    async with create_http_client(settings.github.GITHUB_TIMEOUT) as http:
        reporter = create_error_reporter(kv, http, settings=settings)
        checker = HealthChecker(kv, http, reporter=reporter, settings=settings, metrics=metrics)
        report = await checker.run()

    body = HealthResponse(
        status="healthy" if report.healthy else "unhealthy",
        timestamp=report.timestamp,
        checks=report.results,
    )
    return JSONResponse(status_code=200 if report.healthy else 503, content=body.model_dump(mode="json"))


@router.get("/metrics")
async def prometheus_metrics(metrics: MetricsDep):
    return Response(content=metrics.get_prometheus_metrics(), media_type=metrics.get_content_type())
