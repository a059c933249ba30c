"""
Bounded Cache/History Store

Get-if-fresh access to the two pieces of cross-run state the bot keeps in
the key-value store:

- ``sheet_info``: the reference data (spreadsheet table + description)
- ``chat_history``: the rolling conversation history

Freshness is delegated to the store's native per-key TTL: a present key is
fresh, an expired key is absent. Payloads are schema-validated at this
boundary; anything invalid reads as the documented safe default (``None`` /
``[]``) and never raises.

Writes are last-writer-wins. Two overlapping runs may overwrite each other's
history; nothing here serialises them.
"""

import json

from sheetqa.core.config.constants import KV_KEY_HISTORY, KV_KEY_REFERENCE_CACHE, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import CacheWriteError
from sheetqa.core.interfaces import KeyValueStore
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.models import CacheEntry, HistoryEntry, Invalid, Valid, validate_model
from sheetqa.infrastructure.monitoring.metrics import NoOpMetricsRecorder

logger = get_logger(__name__)

_HISTORY_FIELDS = ("role", "text")


def _strip_entry(entry):
    if isinstance(entry, HistoryEntry):
        return entry.model_dump(include=set(_HISTORY_FIELDS))
    if isinstance(entry, dict):
        return {k: entry[k] for k in _HISTORY_FIELDS if k in entry}
    return entry


def parse_reference_cache(raw: str | None) -> Valid[CacheEntry] | Invalid:
    if raw is None:
        return Invalid("absent")
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        return Invalid(f"unparseable JSON: {e}")
    return validate_model(CacheEntry, payload)


def parse_history(raw: str | None) -> Valid[list[HistoryEntry]] | Invalid:
    """
    Parse a stored history payload.

    A payload that is not a JSON list is Invalid as a whole. Inside a list,
    entries that fail validation are dropped individually and the order of
    the remaining entries is kept.
    """
    if raw is None:
        return Invalid("absent")
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        return Invalid(f"unparseable JSON: {e}")
    if not isinstance(payload, list):
        return Invalid(f"expected a list, got {type(payload).__name__}")

    entries = []
    for item in payload:
        result = validate_model(HistoryEntry, item)
        if isinstance(result, Valid):
            entries.append(result.value)
    return Valid(entries)


class ConversationStore:
    """
    Reference-data cache and conversation history on top of a TTL store.

    Usage:
        store = ConversationStore(redis_client, log=run_logger)
        cached = await store.get_reference_cache()
        if cached is None:
            ...
            await store.save_reference_cache(data, description)
    """

    def __init__(self, kv: KeyValueStore, settings=None, log=None, metrics=None):
        self.kv = kv
        self.settings = settings or get_settings()
        self.log = log or logger
        self.metrics = metrics or NoOpMetricsRecorder()

    # =========================================================================
    # Reference data
    # =========================================================================

    async def get_reference_cache(self) -> CacheEntry | None:
        """
        Return the cached reference data, or None on miss.

        A store error, unparseable JSON or a payload of the wrong shape all
        count as a miss.
        """
        try:
            raw = await self.kv.get(KV_KEY_REFERENCE_CACHE)
        except Exception as e:
            log_stage(self.log, Stage.REFERENCE_DATA, "Reference cache read failed", level="warning", error=str(e))
            self.metrics.record_cache_access(hit=False, success=False)
            return None

        result = parse_reference_cache(raw)
        if isinstance(result, Invalid):
            if raw is not None:
                log_stage(
                    self.log,
                    Stage.REFERENCE_DATA,
                    "Ignoring invalid reference cache",
                    level="warning",
                    reason=result.reason,
                )
            self.metrics.record_cache_access(hit=False)
            return None

        self.metrics.record_cache_access(hit=True)
        return result.value

    async def save_reference_cache(self, data: str, description: str) -> None:
        """
        Cache reference data for ``CACHE_REFERENCE_TTL`` seconds.

        Raises:
            CacheWriteError: If the store rejects the write
        """
        payload = CacheEntry(data=data, description=description).model_dump_json()
        await self._write(KV_KEY_REFERENCE_CACHE, payload, self.settings.cache.CACHE_REFERENCE_TTL)
        log_stage(self.log, Stage.REFERENCE_DATA, "Reference data cached", size=len(data))

    # =========================================================================
    # Conversation history
    # =========================================================================

    async def get_history(self) -> list[HistoryEntry]:
        """Return the stored history, or [] when absent or unreadable."""
        try:
            raw = await self.kv.get(KV_KEY_HISTORY)
        except Exception as e:
            log_stage(self.log, Stage.HISTORY_LOAD, "History read failed", level="warning", error=str(e))
            return []

        result = parse_history(raw)
        if isinstance(result, Invalid):
            if raw is not None:
                log_stage(
                    self.log, Stage.HISTORY_LOAD, "Ignoring invalid history", level="warning", reason=result.reason
                )
            return []
        return result.value

    async def save_history(self, entries: list[HistoryEntry | dict]) -> None:
        """
        Replace the stored history with ``entries``.

        Only ``role`` and ``text`` are written; any other field is stripped.
        Malformed entries are written as-is and filtered out on read.

        Raises:
            CacheWriteError: If the store rejects the write
        """
        cleaned = [_strip_entry(entry) for entry in entries]
        payload = json.dumps(cleaned, ensure_ascii=False)
        await self._write(KV_KEY_HISTORY, payload, self.settings.cache.CACHE_HISTORY_TTL)
        log_stage(self.log, Stage.HISTORY_SAVE, "History saved", entries=len(cleaned))

    async def _write(self, key: str, value: str, ttl: int) -> None:
        try:
            await self.kv.set(key, value, ttl=ttl)
        except Exception as e:
            raise CacheWriteError(
                message=f"Failed to write {key}: {e}",
                details={"key": key, "ttl": ttl},
            ) from e
