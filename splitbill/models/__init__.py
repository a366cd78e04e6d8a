"""
Data Models Package

This package contains all Pydantic models used by the bill engine.
All data crossing the engine boundary must conform to these schemas.
"""

from splitbill.models.bill import (
    Bill,
    BillSettings,
    BillStatus,
    CURRENCY_MINOR_UNITS,
    Item,
    ItemShare,
    ItemType,
    Participant,
    PersonRecord,
    RoundingRule,
    SplitMethod,
)
from splitbill.models.issues import (
    BillIssue,
    IssueCategory,
    IssueCode,
    ValidationResult,
)
from splitbill.models.settlement import (
    ItemAllocation,
    ParticipantTotal,
    SettlementSummary,
    Transfer,
)
from splitbill.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Bill models
    "Bill",
    "BillSettings",
    "BillStatus",
    "CURRENCY_MINOR_UNITS",
    "Item",
    "ItemShare",
    "ItemType",
    "Participant",
    "PersonRecord",
    "RoundingRule",
    "SplitMethod",
    # Issues
    "BillIssue",
    "IssueCategory",
    "IssueCode",
    "ValidationResult",
    # Settlement
    "ItemAllocation",
    "ParticipantTotal",
    "SettlementSummary",
    "Transfer",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
