"""Services package."""

from splitbill.services.storage import (
    AuditStorageInterface,
    BillStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsBillStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryBillStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "BillStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBillStorage",
    "GoogleSheetsClient",
    "InMemoryAuditStorage",
    "InMemoryBillStorage",
    "NotFoundError",
    "StorageError",
]
