"""
Collaborator Protocols

The orchestrator treats every external system as a capability, not a
concrete API. Adapters in ``sheetqa.clients`` and the Redis client satisfy
these protocols; tests substitute in-memory fakes.

Architectural Decision: Protocol-based abstraction
- Dependency injection per workflow run
- Facilitates testing with fake implementations
"""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from sheetqa.core.models import ErrorReport, HealthCheckReport, HistoryEntry, ModelChunk, ReferenceData


@runtime_checkable
class KeyValueStore(Protocol):
    """TTL-capable key-value store; expired keys read as None."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        ...


@runtime_checkable
class ReferenceSource(Protocol):
    """Fetch-once reference data source (the spreadsheet)."""

    async def authenticate(self, credentials_json: str) -> str:
        ...

    async def fetch(self, token: str) -> ReferenceData:
        ...


@runtime_checkable
class ModelSource(Protocol):
    """Generative model: streaming answers and one-shot summaries."""

    def generate_stream(self, prompt: str, history: list[HistoryEntry]) -> AsyncIterator[ModelChunk]:
        ...

    async def generate_once(self, prompt: str) -> str:
        ...


@runtime_checkable
class DeliverySink(Protocol):
    """Idempotent edit/post sink (the deferred chat message)."""

    async def post_new(self, content: str) -> bool:
        ...

    async def edit_existing(self, content: str) -> bool:
        ...


@runtime_checkable
class IssueTracker(Protocol):
    """Deduplicating issue sink used by the error reporter."""

    async def is_duplicate(self, fingerprint: str) -> bool:
        ...

    async def create_issue(self, report: ErrorReport, fingerprint: str) -> bool:
        ...

    async def create_health_check_issue(self, report: HealthCheckReport, fingerprint: str) -> bool:
        ...
