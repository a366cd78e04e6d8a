"""
Issue Models

The engine never raises for expected business conditions (an unallocated
item, a percentage that does not add up, an illegal status change).
Those come back as BillIssue values next to the result, and the caller
decides what to show.

Only truly exceptional conditions raise (see splitbill.engine.errors).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class IssueCategory(str, Enum):
    """Which part of the system produced the issue."""
    STRUCTURAL = "structural"
    ALLOCATION = "allocation"
    INVARIANT = "invariant"
    LIFECYCLE = "lifecycle"
    VALIDATION = "validation"
    PERSISTENCE = "persistence"


class IssueCode(str, Enum):
    """Specific condition behind an issue."""
    # Structural
    PAYER_MISSING = "payer_missing"

    # Allocation
    ITEM_UNALLOCATED = "item_unallocated"
    PERCENT_MISMATCH = "percent_mismatch"
    PERCENT_CLAMPED = "percent_clamped"
    PERCENT_AUTO_DISTRIBUTED = "percent_auto_distributed"
    LOCKED_EXCEEDS_FEE = "locked_exceeds_fee"
    LOCKED_TOTAL_MISMATCH = "locked_total_mismatch"
    ADJUSTMENT_ITEM = "adjustment_item"
    PARTIAL_PARTICIPATION_DISABLED = "partial_participation_disabled"

    # Invariant
    INVARIANT_VIOLATION = "invariant_violation"

    # Lifecycle
    ILLEGAL_TRANSITION = "illegal_transition"
    PRECONDITION_FAILED = "precondition_failed"
    STATUS_LOCKED = "status_locked"

    # Validation
    PAYMENT_PROFILE_INCOMPLETE = "payment_profile_incomplete"
    BELOW_MIN_PARTICIPANTS = "below_min_participants"
    ZERO_FEE_ITEM = "zero_fee_item"

    # Persistence
    SAVE_FAILED = "save_failed"


class BillIssue(BaseModel):
    """A single condition worth showing to the caller."""

    category: IssueCategory = Field(
        ...,
        description="Component that reported the issue"
    )
    code: IssueCode = Field(
        ...,
        description="Machine-readable condition"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="warning",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    item_id: Optional[str] = None
    participant_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """
    Result of a bill health check.

    Errors mean the bill cannot progress; warnings should be shown
    but do not block.
    """

    bill_id: str = Field(
        ...,
        description="ID of the bill being validated"
    )
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    is_valid: bool = Field(
        ...,
        description="No error-level issues were found"
    )
    issues: list[BillIssue] = Field(
        default_factory=list,
        description="All issues found"
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Messages of the warning-level issues"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
