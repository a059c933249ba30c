"""
Upstream Service Exceptions

Errors raised by the adapters that wrap external collaborators (spreadsheet,
generative model, chat webhook, issue tracker). Each carries an ``ErrorKind``
tag assigned at the adapter boundary so that retry decisions never depend on
message text.
"""

from typing import Any

from sheetqa.core.config.constants import TRANSIENT_ERROR_KINDS, ErrorKind
from sheetqa.core.exceptions.base import SheetQAError


class UpstreamError(SheetQAError):
    """Base exception for external service errors."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, request_id=request_id, details=details)
        self.kind = kind
        self.details.setdefault("kind", kind.value)

    @property
    def is_transient(self) -> bool:
        return self.kind in TRANSIENT_ERROR_KINDS


class ReferenceSourceError(UpstreamError):
    """
    Raised when the spreadsheet cannot be read.

    Common causes:
    - Invalid service account JSON
    - Missing sharing permission on the spreadsheet
    - Data sheet renamed or empty
    """
    pass


class ModelError(UpstreamError):
    """
    Raised when the generative model call fails or returns nothing usable.

    Common causes:
    - Quota / rate limit exhausted
    - Invalid API key
    - Empty or malformed stream
    """
    pass


class DeliveryError(UpstreamError):
    """Raised when posting to the chat webhook fails."""
    pass


class IssueTrackerError(UpstreamError):
    """Raised when the issue tracker API responds with an error."""
    pass


def kind_from_status(status_code: int) -> ErrorKind:
    """Classify an HTTP status code."""
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code in (408, 504):
        return ErrorKind.TIMEOUT
    if status_code >= 500:
        return ErrorKind.SERVER
    if status_code >= 400:
        return ErrorKind.CLIENT
    return ErrorKind.UNKNOWN
