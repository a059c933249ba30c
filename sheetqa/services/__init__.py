from sheetqa.services.health_service import HealthChecker

__all__ = ["HealthChecker"]
