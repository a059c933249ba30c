"""
FastAPI Dependency Injection

Routes receive their collaborators through ``Annotated`` dependency aliases
instead of importing globals:

    @router.post("/")
    async def interactions(kv: KVDep, settings: SettingsDep): ...

Long-lived objects (Redis client, metrics recorder, background task set) are
created once in the application lifespan and stored on ``app.state``; tests
override them with ``app.dependency_overrides``.
"""

import asyncio
from typing import Annotated

from fastapi import Depends, Request

from sheetqa.api.security import verify_interaction_request
from sheetqa.core.config.settings import Settings, get_settings
from sheetqa.infrastructure.cache.redis_client import RedisClient, get_redis_client
from sheetqa.infrastructure.monitoring.metrics import MetricsRecorder, get_metrics_recorder


def get_kv(request: Request) -> RedisClient:
    """Key-value store from app state, falling back to the process-wide client."""
    return getattr(request.app.state, "redis", None) or get_redis_client()


def get_metrics(request: Request) -> MetricsRecorder:
    return getattr(request.app.state, "metrics", None) or get_metrics_recorder()


def get_background_tasks(request: Request) -> set[asyncio.Task]:
    """
    Strong references to in-flight workflow runs.

    The event loop only keeps weak references to tasks, so scheduled runs
    are held here until they finish.
    """
    if not hasattr(request.app.state, "background_tasks"):
        request.app.state.background_tasks = set()
    return request.app.state.background_tasks


# ============================================================================
# Type Aliases
# ============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings)]
KVDep = Annotated[RedisClient, Depends(get_kv)]
MetricsDep = Annotated[MetricsRecorder, Depends(get_metrics)]
BackgroundTasksDep = Annotated[set[asyncio.Task], Depends(get_background_tasks)]
VerifiedBodyDep = Annotated[bytes, Depends(verify_interaction_request)]
