"""
Base Exception Class

This module contains ONLY the base exception class that all other exceptions inherit from.
All specialized exceptions are in their respective themed modules.

Author: System Architect
Date: 2026-02-10
"""

from typing import Any


class SheetQAError(Exception):
    """
    Base exception for all bot errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Request ID correlation
    - Structured error logging

    Attributes:
        message: Error message (user-presentable for fatal workflow errors)
        request_id: Request ID for correlation (if available)
        details: Additional error details (dict)

    Example:
        raise ReferenceSourceError(
            "スプレッドシートへのアクセスに失敗しました。",
            request_id="req_lx1a2b_k3j4h5g",
            details={"sheet": "test", "status_code": 403},
        )
    """

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_context(self, **context) -> "SheetQAError":
        """Add additional context to the error details (chainable)."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        request_id_str = f", request_id='{self.request_id}'" if self.request_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{request_id_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details,
    ) -> "SheetQAError":
        """
        Create an error from another exception.

        Useful for wrapping third-party exceptions with additional context.
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details,
        }
        return cls(error_message, request_id=request_id, details=error_details)


class ConfigurationError(SheetQAError):
    """Raised when configuration is invalid or missing."""
    pass
