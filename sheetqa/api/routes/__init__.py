from sheetqa.api.routes.health import router as health_router
from sheetqa.api.routes.interactions import router as interactions_router

__all__ = ["health_router", "interactions_router"]
