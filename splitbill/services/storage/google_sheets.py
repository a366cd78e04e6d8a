"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the shared backend because:
1. Bill owners can open the sheet and see every bill
2. No database setup required
3. Built-in backup (Google's infrastructure)

Each bill is one row. The whole bill travels as its camelCase JSON
document in the last column; the other columns are copies for people
browsing the sheet and are never read back.

TRADEOFFS:
- No transactions: the last save of a bill wins
- Every lookup scans the sheet (fine for a household's bills)
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import RetryCallState, retry, stop_after_attempt, wait_exponential

from splitbill.config import get_settings
from splitbill.models.audit import AuditEvent, AuditEventType, AuditSeverity
from splitbill.models.bill import Bill
from splitbill.services.storage.interface import (
    AuditStorageInterface,
    BillStorageInterface,
    ConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Column mappings for Bills sheet
BILL_COLUMNS = [
    "id",
    "title",
    "status",
    "currency",
    "participant_count",
    "item_count",
    "updated_at",
    "document_json",
]

DOCUMENT_COLUMN = BILL_COLUMNS.index("document_json")
UPDATED_AT_COLUMN = BILL_COLUMNS.index("updated_at")

# Column mappings for Audit sheet, in AuditEvent.to_sheets_row() order
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "bill_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "google_sheets_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for the connection.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=_log_retry,
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_bills_sheet(self) -> gspread.Worksheet:
        """Get or create the Bills worksheet."""
        return self._get_or_create_sheet(
            self._settings.bills_sheet_name, BILL_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsBillStorage(BillStorageInterface):
    """
    Google Sheets implementation of bill storage.

    One bill per row, upserted by id.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _bill_to_row(self, bill: Bill) -> list:
        """Convert a Bill to a spreadsheet row."""
        return [
            bill.id,
            bill.title,
            bill.status.value,
            bill.settings.currency,
            len(bill.participants),
            len(bill.items),
            (bill.last_saved or datetime.utcnow()).isoformat(),
            bill.to_json(),
        ]

    def _row_to_bill(self, row: list) -> Bill:
        """Convert a spreadsheet row back to a Bill."""
        try:
            document = row[DOCUMENT_COLUMN]
        except IndexError:
            raise StorageError(f"Bill row {row[0] if row else '?'} has no document")
        try:
            return Bill.from_document(document)
        except (ValueError, ValidationError) as e:
            raise StorageError(f"Stored bill {row[0]} is malformed: {e}")

    def _find_row(self, sheet: gspread.Worksheet, bill_id: str) -> tuple[Optional[int], Optional[list]]:
        """Sheet row number (1-based) and values for a bill id."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == bill_id:
                return idx, row
        return None, None

    async def save_bill(self, bill: Bill) -> bool:
        """Insert the bill, or replace its row if it is already stored."""
        try:
            sheet = self._client.get_bills_sheet()
            idx, _ = self._find_row(sheet, bill.id)
            row = self._bill_to_row(bill)
            if idx is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(
                    values=[row],
                    range_name=f"A{idx}",
                    value_input_option="RAW",
                )
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save bill: {e}")

    async def get_bill(self, bill_id: str) -> Optional[Bill]:
        """Retrieve a bill by its ID."""
        try:
            sheet = self._client.get_bills_sheet()
            _, row = self._find_row(sheet, bill_id)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get bill: {e}")

        if row is None:
            return None
        return self._row_to_bill(row)

    async def delete_bill(self, bill_id: str) -> bool:
        """Delete a bill by ID."""
        try:
            sheet = self._client.get_bills_sheet()
            idx, _ = self._find_row(sheet, bill_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete bill: {e}")

    async def list_bill_ids(self) -> list[str]:
        """List stored bill ids, most recently saved first."""
        try:
            sheet = self._client.get_bills_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list bills: {e}")

        entries = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            updated_at = row[UPDATED_AT_COLUMN] if len(row) > UPDATED_AT_COLUMN else ""
            entries.append((updated_at, row[0]))

        # ISO timestamps sort chronologically as text
        entries.sort(reverse=True)
        return [bill_id for _, bill_id in entries]


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            bill_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _read_events(self, keep) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        all_rows = sheet.get_all_values()[1:]

        events = []
        for row in all_rows:
            if not row or not row[0] or not keep(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError):
                # Skip malformed rows
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an event to the audit log."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to append audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = self._read_events(
                lambda row: len(row) > 7 and row[7] == str(correlation_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = self._read_events(
                lambda row: len(row) > 6 and row[5] == entity_type and row[6] == entity_id
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events(lambda row: True)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
