"""Google Sheets transport consumed by the synchronisation engine.

This module is the only place that speaks to the Google APIs.  It exposes
the small surface the engine relies on:

``grid_size``
    Physical row and column count of the worksheet.
``read_range``
    Raw cell values of an A1 rectangle plus the merged ranges that intersect
    it.  One raw row is returned per requested row, even when the API trims
    trailing blank rows, so row positions stay meaningful.
``write_cells``
    A single multi-range ``values.batchUpdate``.
``grow_dimension``
    ``appendDimension`` on the worksheet.
``upload_file``
    Upload a file to Drive and point the target cell at it.

Transient HTTP failures are retried with exponential backoff; everything
else is raised as a :class:`~sheetsync.errors.TransportError` subclass.
The worksheet metadata (grid size and merges) is fetched by ``grid_size``
and reused by the reads and growth that follow it.
"""

from __future__ import annotations

import enum
import io
import logging
import mimetypes
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from sheetsync.columns import a1_range, quote_title, split_cell_address
from sheetsync.errors import (
    SheetsPermissionError,
    SpreadsheetAccessError,
    TransportError,
    UploadError,
)
from sheetsync.google_credentials import CredentialProvider, CredentialsError
from sheetsync.grid import MergeRegion

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 5
BACKOFF_SCHEDULE = (1, 2, 4, 8, 16)
RETRIABLE_STATUSES = {429, 500, 502, 503, 504}
_UPLOAD_ERRORS = (TransportError, CredentialsError, OSError, httplib2.HttpLib2Error, KeyError)


class Dimension(str, enum.Enum):
    ROWS = "ROWS"
    COLUMNS = "COLUMNS"


@dataclass(frozen=True)
class GridSize:
    row_count: int
    column_count: int


@dataclass
class RangeValues:
    rows: List[List[Any]] = field(default_factory=list)
    merges: List[MergeRegion] = field(default_factory=list)


class SheetTransport(Protocol):
    """Remote grid operations the engine depends on."""

    def grid_size(self) -> GridSize: ...

    def read_range(self, start: str, end: str) -> RangeValues: ...

    def write_cells(self, operations: Sequence[Any]) -> None: ...

    def grow_dimension(self, axis: Dimension, count: int) -> None: ...

    def upload_file(self, data: bytes, file_name: str, cell: str) -> None: ...


def _http_status(exc: HttpError) -> int:
    status = getattr(exc, "status_code", None)
    if status is not None:
        try:
            return int(status)
        except (TypeError, ValueError):
            return 0
    resp = getattr(exc, "resp", None)
    if resp is not None:
        try:
            return int(getattr(resp, "status", 0))
        except (TypeError, ValueError):
            return 0
    return 0


def merge_from_grid_range(grid_range: Mapping[str, Any]) -> MergeRegion:
    """Convert an API ``GridRange`` (end-exclusive) into an inclusive region."""

    return MergeRegion(
        start_row=int(grid_range.get("startRowIndex", 0)),
        end_row=int(grid_range.get("endRowIndex", 0)) - 1,
        start_col=int(grid_range.get("startColumnIndex", 0)),
        end_col=int(grid_range.get("endColumnIndex", 0)) - 1,
    )


def _normalise_cell(value: Any) -> Any:
    return None if value == "" else value


class GoogleSheetsTransport:
    """Concrete transport for one worksheet of a Google spreadsheet."""

    def __init__(
        self,
        spreadsheet_id: str,
        worksheet_title: str,
        credentials: CredentialProvider,
        *,
        service=None,
        drive_service=None,
        drive_folder_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._spreadsheet_id = spreadsheet_id
        self._title = worksheet_title
        self._credentials = credentials
        self._service = service or build(
            "sheets", "v4", credentials=credentials.credentials, cache_discovery=False
        )
        self._drive_service = drive_service
        self._drive_folder_id = drive_folder_id
        self._sleep = sleep
        self._metadata: Optional[Mapping[str, Any]] = None

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------
    def _call_with_retry(self, request_factory: Callable[[], Any], description: str) -> Any:
        """Execute the request applying exponential backoff for retriable errors."""

        attempt = 0
        while True:
            self._credentials.get_credential()
            try:
                return request_factory().execute()
            except HttpError as exc:
                status = _http_status(exc)
                if status in RETRIABLE_STATUSES and attempt < MAX_RETRY_ATTEMPTS - 1:
                    delay = BACKOFF_SCHEDULE[min(attempt, len(BACKOFF_SCHEDULE) - 1)]
                    attempt += 1
                    logger.warning(
                        "Sheets API %s error (%s). Retrying in %ss (%d/%d)",
                        description,
                        status,
                        delay,
                        attempt,
                        MAX_RETRY_ATTEMPTS,
                    )
                    self._sleep(delay)
                    continue
                if status == 403:
                    raise SheetsPermissionError(f"{description} denied: {exc}") from exc
                raise SpreadsheetAccessError(f"{description} failed: {exc}") from exc

    def _sheet_metadata(self, refresh: bool = False) -> Mapping[str, Any]:
        """Return the worksheet's properties and merges.

        The result is cached until the next :meth:`grid_size` call or growth,
        so the batched reads of one operation share a single
        ``spreadsheets.get``.
        """

        if self._metadata is not None and not refresh:
            return self._metadata
        payload = self._call_with_retry(
            lambda: self._service.spreadsheets().get(
                spreadsheetId=self._spreadsheet_id,
                ranges=[quote_title(self._title)],
                includeGridData=False,
                fields="sheets(properties(sheetId,title,gridProperties),merges)",
            ),
            "spreadsheets.get",
        )
        wanted = self._title.strip().lower()
        for sheet in payload.get("sheets", []):
            props = sheet.get("properties", {})
            if str(props.get("title", "")).strip().lower() == wanted:
                self._metadata = sheet
                return sheet
        raise SpreadsheetAccessError(f"Worksheet {self._title!r} not found in spreadsheet.")

    # ------------------------------------------------------------------
    # SheetTransport
    # ------------------------------------------------------------------
    def grid_size(self) -> GridSize:
        grid = self._sheet_metadata(refresh=True).get("properties", {}).get("gridProperties", {})
        return GridSize(
            row_count=int(grid.get("rowCount", 0)),
            column_count=int(grid.get("columnCount", 0)),
        )

    def read_range(self, start: str, end: str) -> RangeValues:
        range_spec = a1_range(self._title, start, end)
        _, first_row = split_cell_address(start)
        _, last_row = split_cell_address(end)

        payload = self._call_with_retry(
            lambda: self._service.spreadsheets().values().batchGet(
                spreadsheetId=self._spreadsheet_id,
                ranges=[range_spec],
                majorDimension="ROWS",
            ),
            "values.batchGet",
        )
        value_ranges = payload.get("valueRanges", [])
        values = value_ranges[0].get("values", []) if value_ranges else []
        rows: List[List[Any]] = [[_normalise_cell(cell) for cell in row] for row in values]
        expected = last_row - first_row + 1
        rows.extend([] for _ in range(expected - len(rows)))

        merges = [
            merge_from_grid_range(item)
            for item in self._sheet_metadata().get("merges", [])
        ]
        top, bottom = first_row - 1, last_row - 1
        merges = [merge for merge in merges if merge.start_row <= bottom and merge.end_row >= top]
        logger.debug("Read %s: %d rows, %d merges", range_spec, len(rows), len(merges))
        return RangeValues(rows=rows, merges=merges)

    def write_cells(self, operations: Sequence[Any], *, value_input_option: str = "RAW") -> None:
        data = [
            {
                "range": a1_range(self._title, operation.start, operation.end),
                "majorDimension": "ROWS",
                "values": [list(row) for row in operation.values],
            }
            for operation in operations
        ]
        if not data:
            return
        body = {"valueInputOption": value_input_option, "data": data}
        self._call_with_retry(
            lambda: self._service.spreadsheets().values().batchUpdate(
                spreadsheetId=self._spreadsheet_id, body=body
            ),
            "values.batchUpdate",
        )

    def grow_dimension(self, axis: Dimension, count: int) -> None:
        if count <= 0:
            return
        sheet_id = self._sheet_metadata().get("properties", {}).get("sheetId", 0)
        body = {
            "requests": [
                {
                    "appendDimension": {
                        "sheetId": sheet_id,
                        "dimension": Dimension(axis).value,
                        "length": count,
                    }
                }
            ]
        }
        self._call_with_retry(
            lambda: self._service.spreadsheets().batchUpdate(
                spreadsheetId=self._spreadsheet_id, body=body
            ),
            "spreadsheets.batchUpdate",
        )
        self._metadata = None

    def upload_file(self, data: bytes, file_name: str, cell: str) -> None:
        if self._drive_service is None:
            raise UploadError("No Drive service configured for file uploads.")
        mime_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        metadata: Dict[str, Any] = {"name": file_name}
        if self._drive_folder_id:
            metadata["parents"] = [self._drive_folder_id]
        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)

        try:
            created = self._call_with_retry(
                lambda: self._drive_service.files().create(
                    body=metadata, media_body=media, fields="id, webViewLink"
                ),
                "files.create",
            )
            file_id = created["id"]
            self._call_with_retry(
                lambda: self._drive_service.permissions().create(
                    fileId=file_id, body={"type": "anyone", "role": "reader"}
                ),
                "permissions.create",
            )
        except _UPLOAD_ERRORS as exc:
            raise UploadError(f"Upload of {file_name} failed: {exc}") from exc

        formula = _file_formula(file_id, file_name, mime_type, created.get("webViewLink"))
        operation = _FormulaWrite(start=cell, end=cell, values=[[formula]])
        try:
            self.write_cells([operation], value_input_option="USER_ENTERED")
        except _UPLOAD_ERRORS as exc:
            raise UploadError(f"Linking {file_name} into {cell} failed: {exc}") from exc


@dataclass(frozen=True)
class _FormulaWrite:
    start: str
    end: str
    values: List[List[Any]]


def _file_formula(file_id: str, file_name: str, mime_type: str, view_link: Optional[str]) -> str:
    if mime_type.startswith("image/"):
        return f'=IMAGE("https://drive.google.com/uc?export=view&id={file_id}")'
    link = view_link or f"https://drive.google.com/file/d/{file_id}/view"
    label = file_name.replace('"', "'")
    return f'=HYPERLINK("{link}","{label}")'


def parse_spreadsheet_id(value: str) -> str:
    """Normalise a spreadsheet identifier from raw input or URL."""

    if not value:
        return ""
    value = value.strip()
    if "/spreadsheets/d/" in value:
        value = value.split("/spreadsheets/d/", 1)[1]
        value = value.split("/", 1)[0]
    for separator in ("?", "#"):
        if separator in value:
            value = value.split(separator, 1)[0]
    return value


def build_transport(
    spreadsheet_id: str,
    worksheet_title: str,
    credential_path: str,
    *,
    drive_folder_id: Optional[str] = None,
) -> GoogleSheetsTransport:
    """Factory used by callers to construct an authenticated transport."""

    parsed_id = parse_spreadsheet_id(spreadsheet_id)
    if not parsed_id:
        raise SpreadsheetAccessError("A valid spreadsheet ID is required.")
    provider = CredentialProvider.from_file(credential_path)
    drive_service = build("drive", "v3", credentials=provider.credentials, cache_discovery=False)
    return GoogleSheetsTransport(
        parsed_id,
        worksheet_title,
        provider,
        drive_service=drive_service,
        drive_folder_id=drive_folder_id,
    )


__all__ = [
    "BACKOFF_SCHEDULE",
    "Dimension",
    "GoogleSheetsTransport",
    "GridSize",
    "MAX_RETRY_ATTEMPTS",
    "RangeValues",
    "SheetTransport",
    "build_transport",
    "merge_from_grid_range",
    "parse_spreadsheet_id",
]
