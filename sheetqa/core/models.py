"""
Domain Models

Pydantic models for everything that crosses a boundary: payloads persisted in
the key-value store, workflow step outputs (checkpointed as JSON) and the
error report. Step outputs serialise with camelCase keys
(``{"data", "description", "fromCache"}``) so checkpoints stay readable
next to the interaction payloads they came from.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from sheetqa.core.config.constants import Phase

T = TypeVar("T")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ============================================================================
# Tagged validation result
# ============================================================================


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    reason: str


ValidationResult = Valid[T] | Invalid


# ============================================================================
# Persisted state
# ============================================================================


class CacheEntry(BaseModel):
    """
    Reference data cached for one TTL window.

    No timestamp field: the store's native expiry decides freshness.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", strict=True)

    data: str
    description: str


class HistoryEntry(BaseModel):
    """One conversation turn. Only ``role`` and ``text`` are ever persisted."""

    model_config = ConfigDict(frozen=True, extra="ignore", strict=True)

    role: Literal["user", "model"]
    text: str


# ============================================================================
# Collaborator payloads
# ============================================================================


class ReferenceData(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: str
    description: str = ""


@dataclass(frozen=True)
class ModelChunk:
    """An incremental piece of generated text tagged with its phase."""

    text: str
    phase: Phase = Phase.RESPONSE


# ============================================================================
# Workflow
# ============================================================================


class WorkflowRun(BaseModel):
    """
    The durable unit of execution: immutable payload of one run.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1, description="Interaction token for the webhook")
    message: str = Field(..., min_length=1, description="The user's question")
    instance_id: str = Field(..., min_length=1)


class StepOutput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_checkpoint(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ReferenceDataOutput(StepOutput):
    data: str
    description: str
    from_cache: bool


class HistoryOutput(StepOutput):
    history: list[HistoryEntry]


class StreamOutput(StepOutput):
    final_text: str
    updated_history: list[HistoryEntry]
    edit_count: int


class SaveHistoryOutput(StepOutput):
    success: bool


class WorkflowOutcome(BaseModel):
    """Summary of a finished run (success or handled failure)."""

    success: bool
    duration_ms: int
    step_count: int
    from_cache: bool = False
    edit_count: int = 0
    error_message: str | None = None


class ErrorReport(BaseModel):
    """Constructed only on the failure path; never persisted beyond the dedup key."""

    error_message: str
    request_id: str
    workflow_id: str
    step: str | None = None
    duration_ms: int
    step_count: int
    timestamp: str = Field(default_factory=utc_now_iso)


def validate_model(model_cls: type[BaseModel], payload: object) -> Valid | Invalid:
    """Validate ``payload`` against ``model_cls`` without raising."""
    try:
        return Valid(model_cls.model_validate(payload))
    except ValidationError as e:
        return Invalid(reason=f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}")


# ============================================================================
# Health check
# ============================================================================


class HealthCheckResult(BaseModel):
    name: str
    healthy: bool
    duration_ms: int
    error: str | None = None


class HealthCheckReport(BaseModel):
    results: list[HealthCheckResult]
    timestamp: str = Field(default_factory=utc_now_iso)

    @property
    def healthy(self) -> bool:
        return all(r.healthy for r in self.results)

    @property
    def failed(self) -> list[HealthCheckResult]:
        return [r for r in self.results if not r.healthy]

    @property
    def passed(self) -> list[HealthCheckResult]:
        return [r for r in self.results if r.healthy]
