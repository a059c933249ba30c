"""
Cache-Related Exceptions

All exceptions related to the TTL key-value store (Redis).
"""

from sheetqa.core.exceptions.base import SheetQAError


class CacheError(SheetQAError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the key-value store.

    Common causes:
    - Redis server is down
    - Incorrect host/port configuration
    - Authentication failure
    """
    pass


class CacheKeyError(CacheError):
    """Raised when a single key operation (GET/SET) fails."""
    pass


class CacheWriteError(CacheError):
    """
    Raised when persisting reference data or history fails.

    Callers treat this as non-fatal: they log it and continue.
    """
    pass
