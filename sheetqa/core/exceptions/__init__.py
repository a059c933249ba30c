"""
Exception Module

Structured exception hierarchy for the question-answering bot.

Module Structure:
-----------------
- **base.py**: SheetQAError base class + ConfigurationError
- **cache.py**: Key-value store exceptions
- **upstream.py**: External service exceptions tagged with ErrorKind
- **workflow.py**: Step failure / timeout exceptions
- **validation.py**: Admission (inbound payload) exceptions
"""

from sheetqa.core.exceptions.base import ConfigurationError, SheetQAError
from sheetqa.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheWriteError,
)
from sheetqa.core.exceptions.upstream import (
    DeliveryError,
    IssueTrackerError,
    ModelError,
    ReferenceSourceError,
    UpstreamError,
    kind_from_status,
)
from sheetqa.core.exceptions.validation import (
    InvalidInteractionError,
    InvalidSignatureError,
    ValidationError,
)
from sheetqa.core.exceptions.workflow import StepFailure, StepTimeoutError, WorkflowError

__all__ = [
    "SheetQAError",
    "ConfigurationError",
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "CacheWriteError",
    "UpstreamError",
    "ReferenceSourceError",
    "ModelError",
    "DeliveryError",
    "IssueTrackerError",
    "kind_from_status",
    "ValidationError",
    "InvalidInteractionError",
    "InvalidSignatureError",
    "WorkflowError",
    "StepFailure",
    "StepTimeoutError",
]
