"""
Unit Tests for the Cache/History Store

Tests get-if-fresh semantics on top of the store's TTL, schema validation
of stored payloads and field stripping on save.
"""

import json

import pytest

from sheetqa.core.config.constants import KV_KEY_HISTORY, KV_KEY_REFERENCE_CACHE
from sheetqa.core.exceptions import CacheWriteError
from sheetqa.core.models import CacheEntry, HistoryEntry, Invalid, Valid
from sheetqa.infrastructure.cache.conversation_store import ConversationStore, parse_history, parse_reference_cache


@pytest.fixture
def store(in_memory_redis_client, settings):
    return ConversationStore(in_memory_redis_client, settings=settings)


@pytest.mark.unit
class TestReferenceCache:
    @pytest.mark.asyncio
    async def test_save_then_get_within_ttl(self, store, in_memory_redis_client, settings):
        # Arrange
        await store.save_reference_cache("a,b\n1,2\n", "Numbers")

        # Act
        cached = await store.get_reference_cache()

        # Assert
        assert cached == CacheEntry(data="a,b\n1,2\n", description="Numbers")
        assert in_memory_redis_client.ttls[KV_KEY_REFERENCE_CACHE] == settings.cache.CACHE_REFERENCE_TTL

    @pytest.mark.asyncio
    async def test_expired_entry_is_a_miss(self, store, in_memory_redis_client):
        await store.save_reference_cache("a,b\n", "desc")
        in_memory_redis_client.expire(KV_KEY_REFERENCE_CACHE)

        assert await store.get_reference_cache() is None

    @pytest.mark.asyncio
    async def test_unparseable_json_is_a_miss(self, store, in_memory_redis_client):
        in_memory_redis_client.data[KV_KEY_REFERENCE_CACHE] = "{not json"

        assert await store.get_reference_cache() is None

    @pytest.mark.asyncio
    async def test_wrong_shape_is_a_miss(self, store, in_memory_redis_client):
        in_memory_redis_client.data[KV_KEY_REFERENCE_CACHE] = json.dumps({"data": 123, "description": "x"})

        assert await store.get_reference_cache() is None

    @pytest.mark.asyncio
    async def test_store_read_error_is_a_miss(self, store, in_memory_redis_client):
        in_memory_redis_client.fail_reads = True

        assert await store.get_reference_cache() is None

    @pytest.mark.asyncio
    async def test_write_failure_raises_cache_write_error(self, store, in_memory_redis_client):
        in_memory_redis_client.fail_writes = True

        with pytest.raises(CacheWriteError):
            await store.save_reference_cache("a", "b")


@pytest.mark.unit
class TestHistory:
    @pytest.mark.asyncio
    async def test_absent_history_is_empty(self, store):
        assert await store.get_history() == []

    @pytest.mark.asyncio
    async def test_save_strips_extra_fields(self, store, in_memory_redis_client, settings):
        """Only role and text reach the store."""
        # Arrange
        entries = [
            {"role": "user", "text": "質問: hi", "timestamp": 123, "meta": {"x": 1}},
            HistoryEntry(role="model", text="hello"),
        ]

        # Act
        await store.save_history(entries)

        # Assert
        stored = json.loads(in_memory_redis_client.data[KV_KEY_HISTORY])
        assert stored == [{"role": "user", "text": "質問: hi"}, {"role": "model", "text": "hello"}]
        assert in_memory_redis_client.ttls[KV_KEY_HISTORY] == settings.cache.CACHE_HISTORY_TTL

    @pytest.mark.asyncio
    async def test_save_then_get_round_trips_entries(self, store):
        entries = [HistoryEntry(role="user", text="q"), HistoryEntry(role="model", text="a")]

        await store.save_history(entries)

        assert await store.get_history() == entries

    @pytest.mark.asyncio
    async def test_malformed_entries_are_filtered_in_order(self, store, in_memory_redis_client):
        in_memory_redis_client.data[KV_KEY_HISTORY] = json.dumps(
            [
                {"role": "user", "text": "first"},
                {"role": "system", "text": "bad role"},
                {"role": "model"},
                "not an object",
                {"role": "model", "text": "second"},
            ]
        )

        history = await store.get_history()

        assert [entry.text for entry in history] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_non_list_payload_is_empty(self, store, in_memory_redis_client):
        in_memory_redis_client.data[KV_KEY_HISTORY] = json.dumps({"role": "user", "text": "x"})

        assert await store.get_history() == []

    @pytest.mark.asyncio
    async def test_expired_history_is_empty(self, store, in_memory_redis_client):
        await store.save_history([HistoryEntry(role="user", text="q")])
        in_memory_redis_client.expire(KV_KEY_HISTORY)

        assert await store.get_history() == []

    @pytest.mark.asyncio
    async def test_save_replaces_whole_history(self, store):
        await store.save_history([HistoryEntry(role="user", text="old")])
        await store.save_history([HistoryEntry(role="user", text="new")])

        assert [entry.text for entry in await store.get_history()] == ["new"]


@pytest.mark.unit
class TestParsers:
    def test_parse_reference_cache_absent(self):
        assert isinstance(parse_reference_cache(None), Invalid)

    def test_parse_reference_cache_valid(self):
        result = parse_reference_cache('{"data": "d", "description": "x", "extra": true}')

        assert result == Valid(CacheEntry(data="d", description="x"))

    def test_parse_history_invalid_json(self):
        assert isinstance(parse_history("[oops"), Invalid)
