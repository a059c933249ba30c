"""
Unit Tests for Error Fingerprinting and Deduplicated Reporting

Tests fingerprint normalization and the two dedup layers (local key-value
marker, then tracker search) in front of issue creation.
"""

import pytest

from sheetqa.core.models import ErrorReport, HealthCheckReport, HealthCheckResult
from sheetqa.reporting import ErrorReporter, generate_fingerprint, health_check_fingerprint
from sheetqa.reporting.error_reporter import create_error_reporter
from tests.test_fixtures import FakeTracker


def make_report(message: str = "Request failed with status 503") -> ErrorReport:
    return ErrorReport(
        error_message=message,
        request_id="req_abc_1234567",
        workflow_id="wf-1",
        step="streamAndDeliver",
        duration_ms=1200,
        step_count=2,
    )


@pytest.mark.unit
class TestGenerateFingerprint:
    def test_replaces_numbers(self):
        assert generate_fingerprint("Request failed with status 503") == "Request failed with status <N>"

    def test_replaces_uuid(self):
        message = "Workflow 550e8400-e29b-41d4-a716-446655440000 failed"

        assert generate_fingerprint(message) == "Workflow <UUID> failed"

    def test_replaces_timestamp_with_fraction(self):
        message = "Failed at 2026-02-14T10:00:00.123Z after 3 tries"

        assert generate_fingerprint(message) == "Failed at <TIMESTAMP> after <N> tries"

    def test_replaces_long_hex(self):
        assert generate_fingerprint("trace deadbeefcafe missing") == "trace <HEX> missing"

    def test_messages_differing_only_in_dynamic_values_share_a_fingerprint(self):
        first = "Timeout after 30000ms for request 1a2b3c4d5e at 2026-02-14T10:00:00Z"
        second = "Timeout after 90000ms for request 9f8e7d6c5b at 2026-03-01T23:59:59Z"

        assert generate_fingerprint(first) == generate_fingerprint(second)

    def test_distinct_messages_keep_distinct_fingerprints(self):
        assert generate_fingerprint("API認証エラーが発生しました。") != generate_fingerprint(
            "API使用制限に達しました。"
        )

    def test_health_check_fingerprint_sorts_failed_names(self):
        report = HealthCheckReport(
            results=[
                HealthCheckResult(name="kv", healthy=False, duration_ms=3, error="down"),
                HealthCheckResult(name="google_sa", healthy=True, duration_ms=0),
                HealthCheckResult(name="gemini", healthy=False, duration_ms=9, error="HTTP 500"),
            ]
        )

        assert health_check_fingerprint(report) == "health_check:gemini,kv"


@pytest.mark.unit
class TestErrorReporter:
    @pytest.mark.asyncio
    async def test_disabled_without_tracker(self, settings, in_memory_redis_client):
        reporter = ErrorReporter(in_memory_redis_client, None, settings=settings)

        created = await reporter.report(make_report())

        assert created is False
        assert reporter.enabled is False
        assert in_memory_redis_client.data == {}

    @pytest.mark.asyncio
    async def test_first_report_creates_issue_and_marks_fingerprint(
        self, settings, in_memory_redis_client, fake_tracker
    ):
        # Arrange
        reporter = ErrorReporter(in_memory_redis_client, fake_tracker, settings=settings)

        # Act
        created = await reporter.report(make_report())

        # Assert
        key = "error_reported:Request failed with status <N>"
        assert created is True
        assert fake_tracker.created == [("error", "Request failed with status <N>")]
        assert in_memory_redis_client.data[key] == "1"
        assert in_memory_redis_client.ttls[key] == settings.github.ERROR_REPORTED_TTL

    @pytest.mark.asyncio
    async def test_same_fingerprint_reported_once(self, settings, in_memory_redis_client, fake_tracker):
        """Two failures differing only in dynamic values create one issue."""
        reporter = ErrorReporter(in_memory_redis_client, fake_tracker, settings=settings)

        await reporter.report(make_report("Request failed with status 503"))
        second = await reporter.report(make_report("Request failed with status 502"))

        assert second is False
        assert len(fake_tracker.created) == 1
        assert len(fake_tracker.searches) == 1

    @pytest.mark.asyncio
    async def test_remote_duplicate_warms_local_marker(self, settings, in_memory_redis_client):
        tracker = FakeTracker(existing=1)
        reporter = ErrorReporter(in_memory_redis_client, tracker, settings=settings)

        created = await reporter.report(make_report())

        assert created is False
        assert tracker.created == []
        assert in_memory_redis_client.data["error_reported:Request failed with status <N>"] == "1"

    @pytest.mark.asyncio
    async def test_failed_creation_leaves_no_marker(self, settings, in_memory_redis_client):
        tracker = FakeTracker(create_ok=False)
        reporter = ErrorReporter(in_memory_redis_client, tracker, settings=settings)

        created = await reporter.report(make_report())

        assert created is False
        assert in_memory_redis_client.data == {}

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, settings, in_memory_redis_client, fake_tracker):
        in_memory_redis_client.fail_reads = True
        reporter = ErrorReporter(in_memory_redis_client, fake_tracker, settings=settings)

        created = await reporter.report(make_report())

        assert created is False
        assert fake_tracker.created == []

    @pytest.mark.asyncio
    async def test_health_check_report_uses_health_fingerprint(
        self, settings, in_memory_redis_client, fake_tracker
    ):
        reporter = ErrorReporter(in_memory_redis_client, fake_tracker, settings=settings)
        report = HealthCheckReport(results=[HealthCheckResult(name="kv", healthy=False, duration_ms=1, error="x")])

        created = await reporter.report_health_check(report)

        assert created is True
        assert fake_tracker.created == [("health", "health_check:kv")]
        assert "error_reported:health_check:kv" in in_memory_redis_client.data

    @pytest.mark.asyncio
    async def test_healthy_report_is_not_reported(self, settings, in_memory_redis_client, fake_tracker):
        reporter = ErrorReporter(in_memory_redis_client, fake_tracker, settings=settings)
        report = HealthCheckReport(results=[HealthCheckResult(name="kv", healthy=True, duration_ms=1)])

        assert await reporter.report_health_check(report) is False
        assert fake_tracker.created == []


@pytest.mark.unit
class TestCreateErrorReporter:
    def test_no_token_means_no_tracker(self, settings, in_memory_redis_client):
        reporter = create_error_reporter(in_memory_redis_client, http=None, settings=settings)

        assert reporter.enabled is False

    def test_token_enables_tracker(self, in_memory_redis_client):
        from sheetqa.core.config.settings import reload_settings

        settings = reload_settings(GITHUB_TOKEN="ghp_test")
        try:
            reporter = create_error_reporter(in_memory_redis_client, http=None, settings=settings)
            assert reporter.enabled is True
            assert reporter.tracker.repository == settings.github.GITHUB_REPOSITORY
        finally:
            reload_settings()
