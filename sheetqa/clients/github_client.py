"""
GitHub Issue Client

Search + create sink used by the error reporter. Issues carry the
``auto-reported`` label and embed the error fingerprint so that a later
search can find them.
"""

import httpx

from sheetqa.clients.http import kind_from_httpx_error
from sheetqa.core.config.constants import ISSUE_LABEL_AUTO, ISSUE_TITLE_MAX, ErrorKind, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import IssueTrackerError, kind_from_status
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.models import ErrorReport, HealthCheckReport

logger = get_logger(__name__)

USER_AGENT = "yangbingyibot-error-reporter"
ERROR_ISSUE_LABELS = ["bug", ISSUE_LABEL_AUTO]
HEALTH_ISSUE_LABELS = ["health-check", ISSUE_LABEL_AUTO]


def render_error_issue(report: ErrorReport, fingerprint: str) -> tuple[str, str]:
    """Title and markdown body of an error issue."""
    title = f"[Auto] Worker Error: {report.error_message[:ISSUE_TITLE_MAX]}"
    lines = [
        "## Error Details",
        "",
        "| Field | Value |",
        "| --- | --- |",
        f"| **Error** | `{report.error_message}` |",
        f"| **Request ID** | `{report.request_id}` |",
        f"| **Workflow ID** | `{report.workflow_id}` |",
    ]
    if report.step:
        lines.append(f"| **Step** | `{report.step}` |")
    lines += [
        f"| **Duration** | {report.duration_ms}ms |",
        f"| **Steps Completed** | {report.step_count} |",
        f"| **Timestamp** | {report.timestamp} |",
        "",
        "## Fingerprint",
        "",
        f"`{fingerprint}`",
        "",
        "---",
        "*This issue was automatically created by the error monitoring system.*",
    ]
    return title, "\n".join(lines)


def render_health_issue(report: HealthCheckReport, fingerprint: str) -> tuple[str, str]:
    """Title and markdown body of a health-check issue."""
    failed_names = ", ".join(check.name for check in report.failed)
    title = f"[Health Check] {failed_names} 異常検知"

    rows = [f"| {c.name} | ❌ 異常 | {c.duration_ms}ms | {c.error} |" for c in report.failed]
    rows += [f"| {c.name} | ✅ 正常 | {c.duration_ms}ms | - |" for c in report.passed]
    body = "\n".join(
        [
            "## ヘルスチェック結果",
            "",
            "| チェック | 状態 | レイテンシ | 詳細 |",
            "| --- | --- | --- | --- |",
            *rows,
            "",
            "## Fingerprint",
            "",
            f"`{fingerprint}`",
            "",
            f"**検知時刻:** {report.timestamp}",
            "",
            "---",
            "*This issue was automatically created by the health check monitoring system.*",
        ]
    )
    return title, body


class GitHubIssueClient:
    """
    Issue tracker adapter for one repository.

    ``search`` raises on failure; everything else degrades to a logged warning
    and a False result.
    """

    def __init__(self, http: httpx.AsyncClient, token: str, settings=None, log=None):
        self.settings = settings or get_settings()
        self.http = http
        self.repository = self.settings.github.GITHUB_REPOSITORY
        self.api_base = self.settings.github.GITHUB_API_BASE
        self.log = log or logger
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }

    # =========================================================================
    # Tracker primitives
    # =========================================================================

    async def search(self, query: str) -> int:
        """
        Count issues matching ``query``.

        Raises:
            IssueTrackerError: On transport failure or a non-2xx response
        """
        try:
            response = await self.http.get(
                f"{self.api_base}/search/issues",
                params={"q": query, "per_page": 1},
                headers=self._headers,
            )
            response.raise_for_status()
            return int(response.json().get("total_count", 0))
        except httpx.HTTPError as e:
            raise IssueTrackerError(f"GitHub issue search failed: {e}", kind=kind_from_httpx_error(e)) from e
        except (ValueError, TypeError, AttributeError) as e:
            raise IssueTrackerError(
                f"GitHub issue search returned an unreadable body: {e}", kind=ErrorKind.INVALID_RESPONSE
            ) from e

    async def create(self, title: str, body: str, labels: list[str]) -> bool:
        """Open an issue. Returns False instead of raising."""
        try:
            response = await self.http.post(
                f"{self.api_base}/repos/{self.repository}/issues",
                json={"title": title, "body": body, "labels": labels},
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            log_stage(self.log, Stage.REPORTING, "GitHub issue creation error", level="warning", error=str(e))
            return False

        if not response.is_success:
            log_stage(
                self.log,
                Stage.REPORTING,
                "GitHub issue creation failed",
                level="warning",
                status_code=response.status_code,
                kind=kind_from_status(response.status_code).value,
            )
            return False

        log_stage(self.log, Stage.REPORTING, "GitHub issue created", labels=labels)
        return True

    # =========================================================================
    # Reporting operations
    # =========================================================================

    def build_duplicate_query(self, fingerprint: str) -> str:
        return f'repo:{self.repository} is:issue is:open label:{ISSUE_LABEL_AUTO} "{fingerprint}"'

    async def is_duplicate(self, fingerprint: str) -> bool:
        """
        Whether an open auto-reported issue already carries ``fingerprint``.

        Fails open: any error answers False so the incident still gets reported.
        """
        try:
            return await self.search(self.build_duplicate_query(fingerprint)) > 0
        except IssueTrackerError as e:
            log_stage(
                self.log, Stage.REPORTING, "GitHub issue search failed (fail-open)", level="warning", error=e.message
            )
            return False

    async def create_issue(self, report: ErrorReport, fingerprint: str) -> bool:
        title, body = render_error_issue(report, fingerprint)
        return await self.create(title, body, ERROR_ISSUE_LABELS)

    async def create_health_check_issue(self, report: HealthCheckReport, fingerprint: str) -> bool:
        title, body = render_health_issue(report, fingerprint)
        return await self.create(title, body, HEALTH_ISSUE_LABELS)
