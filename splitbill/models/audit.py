"""
Audit Models for Split Bill

Every mutation of a bill is recorded as an audit event.
This provides:
1. Traceability of who changed which share and when
2. Debugging information when totals stop adding up
3. A history the bill owner can review

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each collaborator operation has its own event type.
    """
    # Registry
    PARTICIPANT_ADDED = "participant_added"
    PARTICIPANT_REMOVED = "participant_removed"
    PAYER_CHANGED = "payer_changed"

    # Catalog
    ITEM_ADDED = "item_added"
    ITEM_REMOVED = "item_removed"
    ITEM_UPDATED = "item_updated"
    SETTINGS_UPDATED = "settings_updated"

    # Share matrix
    SHARE_UPDATED = "share_updated"
    PAYMENT_UPDATED = "payment_updated"

    # Allocation
    ITEM_DISTRIBUTED = "item_distributed"
    ALL_ITEMS_DISTRIBUTED = "all_items_distributed"
    INVARIANT_VIOLATED = "invariant_violated"

    # Lifecycle
    STATUS_ADVANCED = "status_advanced"
    STATUS_REJECTED = "status_rejected"
    OPERATION_REJECTED = "operation_rejected"

    # Persistence
    BILL_SAVED = "bill_saved"
    SAVE_FAILED = "save_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every applied or rejected operation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which bill, and which row/column of it
    bill_id: Optional[str] = Field(
        default=None,
        description="Bill the event relates to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'item', 'participant', 'share')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one editing session)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=True,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "bill_id": self.bill_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, bill_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.bill_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.item_added(bill_id, item_id, name)
        event = AuditEventBuilder.status_advanced(bill_id, "DRAFT", "ACTIVE")
    """

    @staticmethod
    def participant_added(
        bill_id: str,
        participant_id: str,
        display_name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTICIPANT_ADDED,
            bill_id=bill_id,
            entity_type="participant",
            entity_id=participant_id,
            description=f"Participant added: {display_name}",
            details={"display_name": display_name},
        )

    @staticmethod
    def participant_removed(
        bill_id: str,
        participant_id: str,
        was_payer: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTICIPANT_REMOVED,
            severity=AuditSeverity.WARNING if was_payer else AuditSeverity.INFO,
            bill_id=bill_id,
            entity_type="participant",
            entity_id=participant_id,
            description=(
                "Payer removed without replacement"
                if was_payer
                else "Participant removed"
            ),
            details={"was_payer": was_payer},
        )

    @staticmethod
    def payer_changed(
        bill_id: str,
        previous_payer_id: Optional[str],
        payer_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYER_CHANGED,
            bill_id=bill_id,
            entity_type="participant",
            entity_id=payer_id,
            description="Payer changed",
            details={"previous_payer_id": previous_payer_id},
        )

    @staticmethod
    def item_added(
        bill_id: str,
        item_id: str,
        name: str,
        item_type: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ITEM_ADDED,
            bill_id=bill_id,
            entity_type="item",
            entity_id=item_id,
            description=f"Item added: {name}",
            details={"item_type": item_type},
        )

    @staticmethod
    def item_removed(bill_id: str, item_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ITEM_REMOVED,
            bill_id=bill_id,
            entity_type="item",
            entity_id=item_id,
            description="Item removed",
        )

    @staticmethod
    def item_updated(
        bill_id: str,
        item_id: str,
        field: str,
        value: Any,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ITEM_UPDATED,
            bill_id=bill_id,
            entity_type="item",
            entity_id=item_id,
            description=f"Item {field} updated",
            details={"field": field, "value": str(value)},
        )

    @staticmethod
    def settings_updated(bill_id: str, changes: dict) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_UPDATED,
            bill_id=bill_id,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Settings updated: {', '.join(sorted(changes))}",
            details={key: str(value) for key, value in changes.items()},
        )

    @staticmethod
    def share_updated(
        bill_id: str,
        item_id: str,
        participant_id: str,
        field: str,
        value: Any,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SHARE_UPDATED,
            bill_id=bill_id,
            entity_type="share",
            entity_id=f"{item_id}:{participant_id}",
            description=f"Share {field} set to {value}",
            details={
                "item_id": item_id,
                "participant_id": participant_id,
                "field": field,
                "value": str(value),
            },
        )

    @staticmethod
    def payment_updated(
        bill_id: str,
        participant_id: str,
        paid: bool,
        item_id: Optional[str] = None,
    ) -> AuditEvent:
        scope = f"item {item_id}" if item_id else "all items"
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_UPDATED,
            bill_id=bill_id,
            entity_type="participant",
            entity_id=participant_id,
            description=f"Marked {'PAID' if paid else 'UNPAID'} for {scope}",
            details={"paid": paid, "item_id": item_id},
        )

    @staticmethod
    def item_distributed(
        bill_id: str,
        item_id: str,
        warnings: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ITEM_DISTRIBUTED,
            severity=AuditSeverity.WARNING if warnings else AuditSeverity.INFO,
            bill_id=bill_id,
            entity_type="item",
            entity_id=item_id,
            description="Item distributed",
            details={"warnings": warnings},
        )

    @staticmethod
    def all_items_distributed(
        bill_id: str,
        item_count: int,
        warnings: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALL_ITEMS_DISTRIBUTED,
            severity=AuditSeverity.WARNING if warnings else AuditSeverity.INFO,
            bill_id=bill_id,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Distributed {item_count} items",
            details={"warnings": warnings},
        )

    @staticmethod
    def invariant_violated(
        bill_id: str,
        grand_total: str,
        allocated_total: str,
        unexplained: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVARIANT_VIOLATED,
            severity=AuditSeverity.ERROR,
            bill_id=bill_id,
            entity_type="bill",
            entity_id=bill_id,
            description="Participant totals do not add up to the grand total",
            details={
                "grand_total": grand_total,
                "allocated_total": allocated_total,
                "unexplained": unexplained,
            },
            error_code="invariant_violation",
            is_user_action=False,
        )

    @staticmethod
    def status_advanced(
        bill_id: str,
        from_status: str,
        to_status: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATUS_ADVANCED,
            bill_id=bill_id,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Status advanced: {from_status} → {to_status}",
            details={"from": from_status, "to": to_status},
        )

    @staticmethod
    def status_rejected(
        bill_id: str,
        status: str,
        reasons: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATUS_REJECTED,
            severity=AuditSeverity.WARNING,
            bill_id=bill_id,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Status change from {status} rejected",
            details={"status": status, "reasons": reasons},
        )

    @staticmethod
    def operation_rejected(
        bill_id: str,
        operation: str,
        status: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            bill_id=bill_id,
            entity_type="bill",
            entity_id=bill_id,
            description=f"{operation} is not allowed while the bill is {status}",
            details={"operation": operation, "status": status},
        )

    @staticmethod
    def bill_saved(bill_id: str, status: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_SAVED,
            bill_id=bill_id,
            entity_type="bill",
            entity_id=bill_id,
            description="Bill saved",
            details={"status": status},
            is_user_action=False,
        )

    @staticmethod
    def save_failed(bill_id: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            bill_id=bill_id,
            entity_type="bill",
            entity_id=bill_id,
            description="Bill could not be saved",
            error_message=error_message,
            is_user_action=False,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        bill_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            bill_id=bill_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
            is_user_action=False,
        )
