"""
Engine Exceptions

Hard errors only. Anything the user can see and fix is reported as a
BillIssue instead of being raised.
"""

from decimal import Decimal
from typing import Optional


class SplitBillError(Exception):
    """Base exception for bill engine errors."""
    pass


class StructuralError(SplitBillError):
    """
    The bill's shape does not allow the requested operation.

    Raised for unknown or duplicate ids, a missing payer at allocation
    or settlement time, and a broken item/participant share mapping.
    """

    def __init__(
        self,
        message: str,
        item_id: Optional[str] = None,
        participant_id: Optional[str] = None,
    ):
        self.item_id = item_id
        self.participant_id = participant_id
        super().__init__(message)


class InvariantViolation(SplitBillError):
    """Participant totals do not add up to the grand total."""

    def __init__(
        self,
        grand_total: Decimal,
        allocated_total: Decimal,
        unexplained: Decimal,
        tolerance: Decimal,
    ):
        self.grand_total = grand_total
        self.allocated_total = allocated_total
        self.unexplained = unexplained
        self.tolerance = tolerance
        super().__init__(
            f"Participant totals ({allocated_total}) differ from the grand "
            f"total ({grand_total}) by {unexplained}, tolerance {tolerance}"
        )
