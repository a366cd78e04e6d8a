"""
In-Memory Storage

Keeps bill documents and audit events in process memory. Used by tests
and by sessions that have no spreadsheet configured.

Bills are stored as documents, not as live objects, so a caller mutating
a bill after saving it does not change what was saved.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from splitbill.models.audit import AuditEvent
from splitbill.models.bill import Bill
from splitbill.services.storage.interface import (
    AuditStorageInterface,
    BillStorageInterface,
)


class InMemoryBillStorage(BillStorageInterface):
    """Dictionary of bill id to stored document."""

    def __init__(self):
        self._documents: dict[str, dict] = {}
        self._saved_at: dict[str, datetime] = {}

    async def save_bill(self, bill: Bill) -> bool:
        self._documents[bill.id] = bill.to_document()
        self._saved_at[bill.id] = datetime.utcnow()
        return True

    async def get_bill(self, bill_id: str) -> Optional[Bill]:
        document = self._documents.get(bill_id)
        if document is None:
            return None
        return Bill.from_document(document)

    async def delete_bill(self, bill_id: str) -> bool:
        self._saved_at.pop(bill_id, None)
        return self._documents.pop(bill_id, None) is not None

    async def list_bill_ids(self) -> list[str]:
        return sorted(self._saved_at, key=self._saved_at.get, reverse=True)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
