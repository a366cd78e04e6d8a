"""
Debounced Auto-Save

DESIGN DECISION: The engine never saves. A session marks the saver dirty
after each change and the saver writes the latest bill once edits have
been quiet for a while, so a burst of typing becomes one write.

A failed save is reported (audit event plus the on_error callback) and the
saver stays dirty. It does not retry on its own; the next change or an
explicit flush() tries again.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional

import structlog

from splitbill.audit import AuditLogger
from splitbill.config import get_settings
from splitbill.models.bill import Bill
from splitbill.services.storage import BillStorageInterface


logger = structlog.get_logger(__name__)

SaveErrorHandler = Callable[[Bill, Exception], None]


class AutoSaver:
    """
    Writes the most recent bill after a quiet period.

    mark_dirty() must be called from a running event loop.
    """

    def __init__(
        self,
        storage: BillStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        debounce_seconds: Optional[float] = None,
        enabled: Optional[bool] = None,
        on_error: Optional[SaveErrorHandler] = None,
    ):
        if debounce_seconds is None or enabled is None:
            settings = get_settings().autosave
            if debounce_seconds is None:
                debounce_seconds = settings.debounce_seconds
            if enabled is None:
                enabled = settings.enabled

        self._storage = storage
        self._audit_logger = audit_logger
        self._debounce = debounce_seconds
        self._enabled = enabled
        self._on_error = on_error

        self._pending: Optional[Bill] = None
        self._dirty = False
        self._timer: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

        self.last_saved_at: Optional[datetime] = None
        self.last_error: Optional[Exception] = None
        self.save_count = 0

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def enabled(self) -> bool:
        return self._enabled

    def mark_dirty(self, bill: Bill, schedule: bool = True) -> None:
        """
        Remember the latest bill and restart the quiet-period timer.

        With schedule=False (or auto-save disabled) nothing is written
        until flush() is called.
        """
        self._pending = bill
        self._dirty = True
        if not (self._enabled and schedule):
            return

        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._save_later())

    async def _save_later(self) -> None:
        await asyncio.sleep(self._debounce)
        # Past this point a new edit schedules a fresh timer instead of
        # cancelling an in-flight write
        self._timer = None
        await self.flush()

    async def flush(self) -> bool:
        """
        Write the pending bill now.

        Returns True if there was nothing to write or the write succeeded.
        """
        async with self._lock:
            if not self._dirty or self._pending is None:
                return True

            bill = self._pending
            self._dirty = False
            saved_at = datetime.utcnow()
            try:
                await self._storage.save_bill(bill.model_copy(update={"last_saved": saved_at}))
            except Exception as e:
                # A newer edit may have arrived while the write was in flight
                self._dirty = True
                self.last_error = e
                logger.error("autosave_failed", bill_id=bill.id, error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_save_failed(bill.id, str(e))
                if self._on_error:
                    self._on_error(bill, e)
                return False

            self.last_saved_at = saved_at
            self.last_error = None
            self.save_count += 1
            if self._audit_logger:
                await self._audit_logger.log_bill_saved(bill.id, bill.status.value)
            return True

    async def close(self) -> bool:
        """Cancel the pending timer and write anything unsaved."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        return await self.flush()
