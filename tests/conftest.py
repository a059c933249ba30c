"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

from unittest.mock import AsyncMock

import pytest

from sheetqa.core.config.settings import reload_settings
from tests.test_fixtures import FakeClock, FakeModel, FakeReferenceSource, FakeSink, FakeTracker, InMemoryRedis

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """
    Deterministic settings for tests.

    Environment and .env values are overridden for everything a test can
    observe; the global singleton is reset afterwards.
    """
    test_settings = reload_settings(
        ENVIRONMENT="test",
        GITHUB_TOKEN=None,
        GITHUB_REPOSITORY="owner/repo",
        DISCORD_APPLICATION_ID="123456",
        DISCORD_PUBLIC_KEY="",
        DISCORD_API_BASE="https://discord.test/api/v10",
        GEMINI_API_KEY="test-key",
        GOOGLE_SERVICE_ACCOUNT='{"client_email": "bot@example.iam.gserviceaccount.com", "private_key": "k"}',
        SPREADSHEET_ID="sheet-id",
        DATA_SHEET_NAME="data",
        DATA_HEADER_ROW=2,
        DESCRIPTION_SHEET_NAME="description",
        SHEETS_API_BASE="https://sheets.test/v4/spreadsheets",
        GITHUB_API_BASE="https://api.github.test",
        GEMINI_MODELS_URL="https://gemini.test/v1beta/models",
        VERIFY_SIGNATURES=False,
        CACHE_REFERENCE_TTL=300,
        CACHE_HISTORY_TTL=300,
        STREAM_STEP_RETRIES=2,
        STREAM_STEP_RETRY_DELAY_MS=1000,
        STREAM_STEP_TIMEOUT=90,
        THINKING_FALLBACK_TEXT="考え中...",
        ERROR_MESSAGE_PREFIX=":rotating_light: エラーが発生しました: ",
    )
    yield test_settings
    reload_settings()


@pytest.fixture
def no_sleep():
    """AsyncMock sleep that records requested delays (seconds) without waiting."""
    return AsyncMock(return_value=None)


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Mock Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def in_memory_redis_client():
    """In-memory Redis client stub recording TTLs."""
    return InMemoryRedis()


@pytest.fixture
def fake_sink():
    return FakeSink()


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def fake_reference_source():
    return FakeReferenceSource()


@pytest.fixture
def fake_tracker():
    return FakeTracker()
