"""
Validation Exceptions

Raised synchronously on the admission path; no workflow run is created.
"""

from sheetqa.core.exceptions.base import SheetQAError


class ValidationError(SheetQAError):
    """Base exception for validation errors."""
    pass


class InvalidInteractionError(ValidationError):
    """
    Raised when an inbound interaction payload is malformed.

    Common causes:
    - Missing ``data`` or ``options``
    - Empty question text
    - Unsupported interaction type
    """
    pass


class InvalidSignatureError(ValidationError):
    """Raised when the interaction signature does not verify."""
    pass
