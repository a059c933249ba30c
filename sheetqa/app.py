#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Configures the interaction endpoint, health/metrics routes, request-id
middleware and exception handlers of the sheet QA bot.

Run locally:
    uvicorn sheetqa.app:app --reload
"""

import asyncio
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sheetqa.api.routes import health_router, interactions_router
from sheetqa.core.config.constants import HEADER_REQUEST_ID
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import InvalidSignatureError, SheetQAError, ValidationError
from sheetqa.core.logging import clear_request_id, get_logger, set_request_id, setup_logging
from sheetqa.infrastructure.cache.redis_client import close_redis, init_redis
from sheetqa.infrastructure.monitoring.metrics import get_metrics_recorder

logger = get_logger(__name__)

# Seconds to wait for in-flight workflow runs on shutdown
SHUTDOWN_GRACE_PERIOD = 30


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).
    """
    settings = get_settings()

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)
    logger.info(
        "Starting sheet QA bot",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    app.state.background_tasks = set()
    try:
        app.state.redis = await init_redis()
        logger.info("Redis connected")

        app.state.metrics = get_metrics_recorder()
        logger.info("Application startup complete")

        yield
    finally:
        logger.info("Shutting down application")

        pending = list(app.state.background_tasks)
        if pending:
            logger.info("Waiting for in-flight workflow runs", count=len(pending))
            _, still_running = await asyncio.wait(pending, timeout=SHUTDOWN_GRACE_PERIOD)
            for task in still_running:
                task.cancel()

        await close_redis()
        logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Spreadsheet-grounded question answering bot for Discord",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.include_router(interactions_router)
    app.include_router(health_router)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Inject a request ID into every request for log correlation."""
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()

    @app.exception_handler(InvalidSignatureError)
    async def invalid_signature_handler(request: Request, exc: InvalidSignatureError):
        return JSONResponse(status_code=401, content=exc.to_dict())

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(SheetQAError)
    async def sheetqa_exception_handler(request: Request, exc: SheetQAError):
        """Handle application exceptions that escaped a route."""
        logger.error(f"Unhandled application error: {exc.message}", error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content=exc.to_dict())

    return app


# Create application instance
app = create_app()


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "sheetqa.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
