"""
Google Sheets Reference Source

Fetch-once source of the reference data the model answers from:

- the data sheet (``DATA_SHEET_NAME``), rendered as CSV starting at the
  header row (``DATA_HEADER_ROW``, 1-based)
- a free-text description of that table, stored in ``A1`` of
  ``DESCRIPTION_SHEET_NAME``

Authentication uses a service account (google-auth); values are read from
the Sheets v4 REST API with httpx. Both sub-resources are fetched in
parallel with one access token. A missing description is tolerated (empty
string + warning); missing data is fatal.
"""

import asyncio
import csv
import io
import json
import time
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from sheetqa.clients.http import kind_from_httpx_error
from sheetqa.core.config.constants import ErrorKind, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import ConfigurationError, ReferenceSourceError, kind_from_status
from sheetqa.core.logging import get_logger, log_stage
from sheetqa.core.models import ReferenceData
from sheetqa.infrastructure.monitoring.metrics import NoOpMetricsRecorder

logger = get_logger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
REQUIRED_ACCOUNT_FIELDS = ("client_email", "private_key")


def parse_service_account(credentials_json: str) -> dict:
    """
    Parse service account JSON and check the fields a token exchange needs.

    Raises:
        ConfigurationError: If the JSON is malformed or incomplete
    """
    try:
        info = json.loads(credentials_json)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("Invalid service account JSON format") from e
    if not isinstance(info, dict) or not all(info.get(field) for field in REQUIRED_ACCOUNT_FIELDS):
        raise ConfigurationError("Service account JSON missing required fields (client_email, private_key)")
    return info


def rows_to_csv(rows: list[list], header_row: int = 1) -> str:
    """Render sheet values as CSV, dropping the rows above ``header_row``."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in rows[max(header_row - 1, 0):]:
        writer.writerow(row)
    return buffer.getvalue()


class SheetsClient:
    """
    Reference source backed by one spreadsheet.

    Usage:
        source = SheetsClient(http, log=run_logger)
        token = await source.authenticate(settings.sheets.GOOGLE_SERVICE_ACCOUNT)
        reference = await source.fetch(token)
    """

    def __init__(self, http: httpx.AsyncClient, settings=None, log=None, metrics=None):
        self.settings = settings or get_settings()
        self.http = http
        self.log = log or logger
        self.metrics = metrics or NoOpMetricsRecorder()
        sheets = self.settings.sheets
        self.values_url = f"{sheets.SHEETS_API_BASE}/{sheets.SPREADSHEET_ID}/values"

    async def authenticate(self, credentials_json: str) -> str:
        """
        Exchange service account credentials for an access token.

        Raises:
            ReferenceSourceError: If the credentials are invalid or the exchange fails
        """
        try:
            info = parse_service_account(credentials_json)
            credentials = service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
            await asyncio.to_thread(credentials.refresh, Request())
        except ConfigurationError as e:
            raise ReferenceSourceError(
                f"Google authentication failed: {e.message}", kind=ErrorKind.AUTH
            ) from e
        except (GoogleAuthError, ValueError) as e:
            raise ReferenceSourceError(f"Google authentication failed: {e}", kind=ErrorKind.AUTH) from e

        if not credentials.token:
            raise ReferenceSourceError("Failed to obtain Google auth token", kind=ErrorKind.AUTH)
        return credentials.token

    async def fetch(self, token: str) -> ReferenceData:
        """
        Fetch the data table and its description in parallel.

        Raises:
            ReferenceSourceError: If the data sheet cannot be read or is empty
        """
        start = time.perf_counter()
        try:
            data, description = await asyncio.gather(self._fetch_data(token), self._fetch_description(token))
        except ReferenceSourceError:
            self.metrics.record_sheets_call((time.perf_counter() - start) * 1000, success=False)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.record_sheets_call(duration_ms, success=True)
        log_stage(
            self.log,
            Stage.REFERENCE_DATA,
            "Spreadsheet fetched",
            duration_ms=round(duration_ms),
            data_size=len(data),
            has_description=bool(description),
        )
        return ReferenceData(data=data, description=description)

    async def _get_values(self, token: str, cell_range: str) -> httpx.Response:
        return await self.http.get(
            f"{self.values_url}/{quote(cell_range, safe='!:')}",
            headers={"Authorization": f"Bearer {token}"},
        )

    async def _fetch_data(self, token: str) -> str:
        sheet = self.settings.sheets.DATA_SHEET_NAME
        try:
            response = await self._get_values(token, sheet)
        except httpx.HTTPError as e:
            raise ReferenceSourceError(
                "スプレッドシートへのアクセスに失敗しました。", kind=kind_from_httpx_error(e), details={"sheet": sheet}
            ) from e

        if not response.is_success:
            raise ReferenceSourceError(
                "スプレッドシートへのアクセスに失敗しました。権限を確認してください。",
                kind=kind_from_status(response.status_code),
                details={"sheet": sheet, "status_code": response.status_code},
            )

        rows = response.json().get("values") or []
        content = rows_to_csv(rows, self.settings.sheets.DATA_HEADER_ROW)
        if not content.strip():
            raise ReferenceSourceError(
                "シートデータのダウンロードに失敗しました。",
                kind=ErrorKind.INVALID_RESPONSE,
                details={"sheet": sheet, "reason": "empty"},
            )
        return content

    async def _fetch_description(self, token: str) -> str:
        sheet = self.settings.sheets.DESCRIPTION_SHEET_NAME
        try:
            response = await self._get_values(token, f"{sheet}!A1")
        except httpx.HTTPError as e:
            log_stage(self.log, Stage.REFERENCE_DATA, "Description fetch failed", level="warning", error=str(e))
            return ""

        if not response.is_success:
            log_stage(
                self.log,
                Stage.REFERENCE_DATA,
                "Description sheet unavailable, using empty description",
                level="warning",
                sheet=sheet,
                status_code=response.status_code,
            )
            return ""

        try:
            values = response.json().get("values") or [[]]
            first_row = values[0]
            if not isinstance(first_row, list):
                raise TypeError(f"expected a row list, got {type(first_row).__name__}")
        except (ValueError, TypeError, AttributeError, KeyError, IndexError) as e:
            log_stage(
                self.log,
                Stage.REFERENCE_DATA,
                "Description response unreadable, using empty description",
                level="warning",
                sheet=sheet,
                error=str(e),
            )
            return ""
        return str(first_row[0]) if first_row else ""
