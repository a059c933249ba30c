"""
Workflow Exceptions

Errors that cross a checkpointed step boundary and reach the orchestrator's
top-level handler.
"""

from sheetqa.core.exceptions.base import SheetQAError


class WorkflowError(SheetQAError):
    """Base exception for workflow errors."""
    pass


class StepFailure(WorkflowError):
    """
    Raised when a step exhausts its retries.

    ``details["step"]`` names the failing step; ``details["attempts"]`` counts
    executions of the step body.
    """
    pass


class StepTimeoutError(WorkflowError, TimeoutError):
    """Raised when a step exceeds its hard timeout."""
    pass
