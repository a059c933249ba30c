"""Shared helpers for the httpx-based adapters."""

import httpx

from sheetqa.core.config.constants import ErrorKind
from sheetqa.core.exceptions.upstream import kind_from_status


def kind_from_httpx_error(error: Exception) -> ErrorKind:
    """Classify an exception raised by httpx."""
    if isinstance(error, httpx.TimeoutException):
        return ErrorKind.TIMEOUT
    if isinstance(error, httpx.HTTPStatusError):
        return kind_from_status(error.response.status_code)
    if isinstance(error, httpx.TransportError):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def create_http_client(timeout: float) -> httpx.AsyncClient:
    """
    Build the AsyncClient a workflow run shares across its adapters.

    The caller owns the client and must close it (``async with`` or ``aclose``).
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
    )
