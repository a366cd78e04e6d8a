"""
Audit Logger

DESIGN DECISION: Every change to a bill is logged.
This provides:
1. Complete traceability of who changed which share
2. Debugging capability when totals stop adding up
3. A history the bill owner can review

The audit logger:
- Is async to not block the editing flow
- Gracefully handles failures (a broken audit sheet never stops editing)
- Supports correlation IDs to trace one editing session
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitbill.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from splitbill.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """Route structlog output through the root logger at the right level."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        correlation_id: Optional[UUID] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            correlation_id: Stamped on events that carry none,
                    so one session's events can be read back together.
        """
        self._storage = storage
        self._correlation_id = correlation_id
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        if event.correlation_id is None and self._correlation_id is not None:
            event = event.model_copy(update={"correlation_id": self._correlation_id})

        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_all(self, events: list[AuditEvent]) -> bool:
        """Log events in order. Returns False if any storage write failed."""
        results = [await self.log(event) for event in events]
        return all(results)

    async def log_bill_saved(self, bill_id: str, status: str) -> None:
        """Log a successful save."""
        await self.log(AuditEventBuilder.bill_saved(bill_id, status))

    async def log_save_failed(self, bill_id: str, error_message: str) -> None:
        """Log a failed save."""
        await self.log(AuditEventBuilder.save_failed(bill_id, error_message))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        bill_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            bill_id=bill_id,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when a bill is opened for editing and pass it to the
    session's AuditLogger.
    """
    return uuid4()
