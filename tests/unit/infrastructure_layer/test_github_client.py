"""
Unit Tests for the GitHub Issue Client
"""

import json

import httpx
import pytest

from sheetqa.clients.github_client import GitHubIssueClient, render_error_issue, render_health_issue
from sheetqa.core.config.constants import ErrorKind
from sheetqa.core.exceptions import IssueTrackerError
from sheetqa.core.models import ErrorReport, HealthCheckReport, HealthCheckResult

REPORT = ErrorReport(
    error_message="Request failed with status 503",
    request_id="req_1",
    workflow_id="wf-1",
    step="streamAndDeliver",
    duration_ms=1500,
    step_count=2,
    timestamp="2026-02-14T10:00:00.000Z",
)


def make_client(settings, handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return http, GitHubIssueClient(http, "ghp_secret", settings=settings)


@pytest.mark.unit
class TestRendering:
    def test_error_issue(self):
        title, body = render_error_issue(REPORT, "Request failed with status <N>")

        assert title == "[Auto] Worker Error: Request failed with status 503"
        assert "| **Step** | `streamAndDeliver` |" in body
        assert "`Request failed with status <N>`" in body

    def test_error_issue_title_is_truncated(self):
        report = REPORT.model_copy(update={"error_message": "x" * 200})

        title, _ = render_error_issue(report, "fp")

        assert title == "[Auto] Worker Error: " + "x" * 80

    def test_health_issue_lists_failed_and_passed(self):
        report = HealthCheckReport(
            results=[
                HealthCheckResult(name="kv", healthy=False, duration_ms=5, error="down"),
                HealthCheckResult(name="gemini", healthy=True, duration_ms=120),
            ]
        )

        title, body = render_health_issue(report, "health_check:kv")

        assert title == "[Health Check] kv 異常検知"
        assert "| kv | ❌ 異常 | 5ms | down |" in body
        assert "| gemini | ✅ 正常 | 120ms | - |" in body


@pytest.mark.unit
class TestGitHubIssueClient:
    @pytest.mark.asyncio
    async def test_search_counts_matching_issues(self, settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"total_count": 2, "items": []})

        http, client = make_client(settings, handler)
        async with http:
            count = await client.search(client.build_duplicate_query("fp <N>"))

        assert count == 2
        assert seen[0].url.path == "/search/issues"
        assert seen[0].url.params["q"] == 'repo:owner/repo is:issue is:open label:auto-reported "fp <N>"'
        assert seen[0].url.params["per_page"] == "1"
        assert seen[0].headers["Authorization"] == "Bearer ghp_secret"

    @pytest.mark.asyncio
    async def test_search_failure_raises_tagged_error(self, settings):
        http, client = make_client(settings, lambda request: httpx.Response(403))
        async with http:
            with pytest.raises(IssueTrackerError) as exc_info:
                await client.search("q")

        assert exc_info.value.kind is ErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_is_duplicate_fails_open(self, settings):
        http, client = make_client(settings, lambda request: httpx.Response(500))
        async with http:
            assert await client.is_duplicate("fp") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"total_count": None}, {"total_count": "many"}, ["not", "an", "object"]])
    async def test_is_duplicate_fails_open_on_unreadable_count(self, settings, body):
        http, client = make_client(settings, lambda request: httpx.Response(200, json=body))
        async with http:
            assert await client.is_duplicate("fp") is False

    @pytest.mark.asyncio
    async def test_create_issue_posts_labels(self, settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"number": 7})

        http, client = make_client(settings, handler)
        async with http:
            assert await client.create_issue(REPORT, "fp") is True

        payload = json.loads(seen[0].content)
        assert seen[0].url.path == "/repos/owner/repo/issues"
        assert payload["labels"] == ["bug", "auto-reported"]
        assert payload["title"].startswith("[Auto] Worker Error:")

    @pytest.mark.asyncio
    async def test_create_returns_false_on_rejection(self, settings):
        http, client = make_client(settings, lambda request: httpx.Response(422, json={"message": "invalid"}))
        async with http:
            assert await client.create("t", "b", ["bug"]) is False
