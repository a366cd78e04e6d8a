"""
Lifecycle Controller

Bills move forward one step at a time:

    DRAFT → ACTIVE → COMPLETED → SETTLED

Each step has a precondition. A failed precondition is reported as
lifecycle issues naming what is missing; the status is left alone.
The status also decides which operations may still change the bill.
"""

from decimal import Decimal
from typing import Optional

import structlog

from splitbill.engine.allocation import percent_total
from splitbill.engine.structure import require_payer
from splitbill.models.bill import PERCENT_TOTAL, Bill, BillStatus, SplitMethod
from splitbill.models.issues import BillIssue, IssueCategory, IssueCode


logger = structlog.get_logger(__name__)

NEXT_STATUS = {
    BillStatus.DRAFT: BillStatus.ACTIVE,
    BillStatus.ACTIVE: BillStatus.COMPLETED,
    BillStatus.COMPLETED: BillStatus.SETTLED,
}

STATUS_RANK = {status: rank for rank, status in enumerate(BillStatus)}

# Looser than the allocation check so one-decimal auto splits (33.3 × 3) pass
PERCENT_COMPLETE_TOLERANCE = Decimal("0.1")

MIN_PARTICIPANTS_TO_ACTIVATE = 2

# Operations still allowed once a bill is COMPLETED
PAYMENT_OPERATIONS = frozenset({"toggle_share_paid", "set_participant_paid"})

STATUS_OPERATION = "advance_status"


def next_status(status: BillStatus) -> Optional[BillStatus]:
    return NEXT_STATUS.get(status)


def _precondition(message: str, **kwargs) -> BillIssue:
    return BillIssue(
        category=IssueCategory.LIFECYCLE,
        code=IssueCode.PRECONDITION_FAILED,
        message=message,
        severity="error",
        **kwargs,
    )


def _check_activate(bill: Bill) -> list[BillIssue]:
    issues = []
    if not any(item.fee > 0 for item in bill.normal_items):
        issues.append(_precondition("Add at least one item with a fee"))
    if len(bill.participants) < MIN_PARTICIPANTS_TO_ACTIVATE:
        issues.append(_precondition(
            f"At least {MIN_PARTICIPANTS_TO_ACTIVATE} participants are needed"
        ))
    return issues


def _check_complete(bill: Bill) -> list[BillIssue]:
    issues = []
    for item in bill.normal_items:
        name = item.name or "Item"
        if item.split_method is SplitMethod.EQUAL:
            if not any(s.include for s in item.shares):
                issues.append(_precondition(
                    f"{name}: nobody is included",
                    item_id=item.id,
                ))
        else:
            total = percent_total(item)
            if abs(total - PERCENT_TOTAL) > PERCENT_COMPLETE_TOLERANCE:
                issues.append(_precondition(
                    f"{name}: percentages sum to {total:.1f}%, not 100%",
                    item_id=item.id,
                    details={"percent_total": str(total)},
                ))
    return issues


def _check_settle(bill: Bill) -> list[BillIssue]:
    issues = []
    for participant in bill.participants:
        unpaid = [
            item.id for item in bill.items
            for share in item.shares
            if share.participant_id == participant.id
            and share.include
            and not share.paid
        ]
        if unpaid:
            issues.append(_precondition(
                f"{participant.display_name} has {len(unpaid)} unpaid item(s)",
                participant_id=participant.id,
                details={"item_ids": unpaid},
            ))
    return issues


PRECONDITIONS = {
    BillStatus.DRAFT: _check_activate,
    BillStatus.ACTIVE: _check_complete,
    BillStatus.COMPLETED: _check_settle,
}


def check_preconditions(bill: Bill) -> list[BillIssue]:
    """Issues blocking the step from the bill's current status."""
    check = PRECONDITIONS.get(bill.status)
    if check is None:
        return [BillIssue(
            category=IssueCategory.LIFECYCLE,
            code=IssueCode.ILLEGAL_TRANSITION,
            message=f"A {bill.status.value} bill cannot move any further",
            severity="error",
        )]
    require_payer(bill)
    return check(bill)


def can_advance(bill: Bill) -> bool:
    return not check_preconditions(bill)


def advance_status(bill: Bill) -> list[BillIssue]:
    """
    Move the bill one step forward if its precondition holds.

    Mutates bill.status only on success. Returns the blocking issues
    otherwise.
    """
    issues = check_preconditions(bill)
    if issues:
        logger.info(
            "status_advance_rejected",
            bill_id=bill.id,
            status=bill.status.value,
            reasons=[issue.message for issue in issues],
        )
        return issues

    previous = bill.status
    bill.status = NEXT_STATUS[previous]
    logger.info(
        "status_advanced",
        bill_id=bill.id,
        from_status=previous.value,
        to_status=bill.status.value,
    )
    return []


def transition_to(bill: Bill, target: BillStatus) -> list[BillIssue]:
    """Advance to an explicit target, which must be the next status."""
    expected = next_status(bill.status)
    if target is not expected:
        direction = "back" if STATUS_RANK[target] <= STATUS_RANK[bill.status] else "ahead"
        return [BillIssue(
            category=IssueCategory.LIFECYCLE,
            code=IssueCode.ILLEGAL_TRANSITION,
            message=(
                f"Cannot move {direction} from {bill.status.value} "
                f"to {target.value}"
            ),
            severity="error",
            details={"from": bill.status.value, "to": target.value},
        )]
    return advance_status(bill)


def operation_allowed(status: BillStatus, operation: str) -> bool:
    """
    Which operations a status still permits.

    DRAFT and ACTIVE bills are fully editable, COMPLETED bills only take
    payment updates and SETTLED bills are read-only. Status changes are
    always offered; their own preconditions decide.
    """
    if status in (BillStatus.DRAFT, BillStatus.ACTIVE):
        return True
    if operation == STATUS_OPERATION:
        return True
    if status is BillStatus.COMPLETED:
        return operation in PAYMENT_OPERATIONS
    return False


def gate(bill: Bill, operation: str) -> Optional[BillIssue]:
    """Issue to return instead of running operation, or None to proceed."""
    if operation_allowed(bill.status, operation):
        return None
    return BillIssue(
        category=IssueCategory.LIFECYCLE,
        code=IssueCode.STATUS_LOCKED,
        message=f"A {bill.status.value} bill does not allow {operation}",
        severity="warning",
        details={"operation": operation, "status": bill.status.value},
    )
