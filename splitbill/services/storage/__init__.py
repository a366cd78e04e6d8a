"""
Storage Services Package

Provides abstract interfaces and concrete implementations for bill storage.
Google Sheets is the shared backend; the in-memory backend serves tests
and local sessions.
"""

from splitbill.services.storage.interface import (
    AuditStorageInterface,
    BillStorageInterface,
    ConnectionError,
    NotFoundError,
    StorageError,
)
from splitbill.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBillStorage,
)
from splitbill.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBillStorage,
    GoogleSheetsClient,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BillStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryBillStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBillStorage",
    "GoogleSheetsClient",
]
