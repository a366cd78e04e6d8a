"""
Abstract Storage Interface

DESIGN DECISION: The engine never talks to a storage backend directly.
This allows us to:
1. Keep Google Sheets as a human-readable backend
2. Use in-memory storage for testing and local sessions
3. Swap in a real database later without touching the engine

A bill is stored whole, as the same camelCase document Bill.to_document()
produces. There is no per-field update; saving always replaces the stored
document (last writer wins).
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from splitbill.models.audit import AuditEvent
from splitbill.models.bill import Bill


class BillStorageInterface(ABC):
    """
    Abstract interface for bill storage operations.

    Any storage implementation (Google Sheets, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def save_bill(self, bill: Bill) -> bool:
        """
        Insert or replace a bill document.

        Args:
            bill: The bill to save

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_bill(self, bill_id: str) -> Optional[Bill]:
        """
        Retrieve a bill by its ID.

        Args:
            bill_id: The bill's identifier

        Returns:
            The bill if found, None otherwise
        """
        pass

    @abstractmethod
    async def delete_bill(self, bill_id: str) -> bool:
        """
        Delete a bill by ID.

        Returns:
            True if a bill was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_bill_ids(self) -> list[str]:
        """IDs of every stored bill, most recently saved first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one editing session).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'bill', 'item', 'share')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
