"""
Main Orchestrator for Split Bill

Ties the synchronous engine to the async outside world for one bill
being edited:
1. Apply an operation and keep the resulting bill
2. Forward the operation's audit events
3. Mark the bill dirty so the auto-saver writes it

DESIGN DECISION: The session is the only place that holds "the current
bill". Operations stay pure; they never see storage, timers or loggers.
One session per bill, one writer per session.
"""

import asyncio
from typing import Any, Callable, Optional

import structlog

from splitbill import operations
from splitbill.audit import AuditLogger, configure_logging, create_correlation_id
from splitbill.config import get_settings
from splitbill.engine.errors import SplitBillError
from splitbill.engine.settlement import suggest_transfers, summarize
from splitbill.models.bill import Bill
from splitbill.models.issues import ValidationResult
from splitbill.models.settlement import SettlementSummary, Transfer
from splitbill.operations import OperationResult
from splitbill.services.autosave import AutoSaver, SaveErrorHandler
from splitbill.services.storage import (
    AuditStorageInterface,
    BillStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBillStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryBillStorage,
    NotFoundError,
)
from splitbill.validation import BillValidator


logger = structlog.get_logger(__name__)


class BillSession:
    """
    Editing session for one bill.

    Flow:
    1. apply(operation, ...) → new bill replaces the current one
    2. Events → audit log
    3. Changed → auto-saver marked dirty (written after the quiet period)
    4. close() → anything unsaved is written
    """

    def __init__(
        self,
        bill: Bill,
        bill_storage: Optional[BillStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        autosaver: Optional[AutoSaver] = None,
        validator: Optional[BillValidator] = None,
        distribute_delay_seconds: Optional[float] = None,
    ):
        self._bill = bill
        self._audit_logger = audit_logger or AuditLogger(correlation_id=create_correlation_id())
        if autosaver is None and bill_storage is not None:
            autosaver = AutoSaver(bill_storage, audit_logger=self._audit_logger)
        self._autosaver = autosaver
        self._validator = validator or BillValidator()
        if distribute_delay_seconds is None:
            distribute_delay_seconds = get_settings().app.distribute_all_delay_seconds
        self._distribute_delay = distribute_delay_seconds

    @property
    def bill(self) -> Bill:
        return self._bill

    @property
    def autosaver(self) -> Optional[AutoSaver]:
        return self._autosaver

    @property
    def dirty(self) -> bool:
        return self._autosaver.dirty if self._autosaver else False

    async def apply(
        self,
        operation: Callable[..., OperationResult],
        *args: Any,
        **kwargs: Any,
    ) -> OperationResult:
        """
        Run an operation against the current bill.

        A hard engine error is audited and re-raised; the current bill is
        left as it was.
        """
        try:
            result = operation(self._bill, *args, **kwargs)
        except SplitBillError as e:
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                bill_id=self._bill.id,
                details={"operation": getattr(operation, "__name__", str(operation))},
            )
            raise

        if result.events:
            await self._audit_logger.log_all(result.events)

        if result.changed:
            self._bill = result.bill
            if self._autosaver:
                self._autosaver.mark_dirty(self._bill)

        return result

    async def distribute_all(self) -> OperationResult:
        """Recompute every item after the configured delay."""
        if self._distribute_delay > 0:
            await asyncio.sleep(self._distribute_delay)
        return await self.apply(operations.distribute_all)

    def summary(self) -> SettlementSummary:
        return summarize(self._bill)

    def transfers(self) -> list[Transfer]:
        return suggest_transfers(self._bill)

    def validate(self) -> ValidationResult:
        return self._validator.validate(self._bill)

    async def save(self) -> bool:
        """Write the current bill now, bypassing the quiet period."""
        if self._autosaver is None:
            return False
        self._autosaver.mark_dirty(self._bill, schedule=False)
        return await self._autosaver.flush()

    async def close(self) -> bool:
        """Write anything unsaved and stop the auto-save timer."""
        if self._autosaver is None:
            return True
        return await self._autosaver.close()

    @classmethod
    async def load(
        cls,
        bill_id: str,
        bill_storage: BillStorageInterface,
        **kwargs: Any,
    ) -> "BillSession":
        """Open a session for a stored bill."""
        bill = await bill_storage.get_bill(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")
        return cls(bill, bill_storage=bill_storage, **kwargs)


def create_session(
    bill: Bill,
    use_storage: bool = True,
    on_save_error: Optional[SaveErrorHandler] = None,
) -> tuple[BillSession, Optional[GoogleSheetsClient]]:
    """
    Factory function to create a session with its collaborators.

    Args:
        bill: The bill to edit
        use_storage: Whether to use Google Sheets storage.
                    Set to False for in-memory storage.
        on_save_error: Called with (bill, error) when an auto-save fails

    Returns:
        (session, sheets_client)
    """
    configure_logging(debug=get_settings().app.debug_mode)
    sheets_client = None
    bill_storage: BillStorageInterface
    audit_storage: AuditStorageInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            bill_storage = GoogleSheetsBillStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            bill_storage = InMemoryBillStorage()
            audit_storage = InMemoryAuditStorage()
    else:
        bill_storage = InMemoryBillStorage()
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage, correlation_id=create_correlation_id())
    autosaver = AutoSaver(bill_storage, audit_logger=audit_logger, on_error=on_save_error)

    session = BillSession(
        bill,
        bill_storage=bill_storage,
        audit_logger=audit_logger,
        autosaver=autosaver,
    )
    return session, sheets_client
