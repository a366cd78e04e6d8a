"""
Collaborator Operations

The public mutation API. Every operation takes a bill and returns an
OperationResult holding a new bill; the bill passed in is never modified.

Each operation:
1. Checks the bill's status allows it (returns a lifecycle issue if not)
2. Works on a deep copy of the bill
3. Recomputes the amounts its change affects
4. Checks the accounting invariant on the result
5. Reports what happened as audit events

A StructuralError (unknown id, missing payer) propagates to the caller
and, because only the copy was touched, leaves the caller's bill as it was.
"""

import functools
from decimal import Decimal
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, Field

from splitbill.engine import allocation, lifecycle, structure
from splitbill.engine.errors import StructuralError
from splitbill.engine.settlement import check_invariant
from splitbill.models.audit import AuditEvent, AuditEventBuilder
from splitbill.models.bill import (
    Bill,
    BillSettings,
    BillStatus,
    ItemType,
    Participant,
    SplitMethod,
)
from splitbill.models.issues import BillIssue, IssueCategory, IssueCode


Amount = Union[Decimal, int, str]


class OperationResult(BaseModel):
    """Outcome of one operation."""

    bill: Bill
    issues: list[BillIssue] = Field(default_factory=list)
    events: list[AuditEvent] = Field(default_factory=list)
    changed: bool = False

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity in ("warning", "error")]

    @property
    def has_errors(self) -> bool:
        return any(i.severity == "error" for i in self.issues)

    def issues_with(self, code: IssueCode) -> list[BillIssue]:
        return [i for i in self.issues if i.code == code]


Outcome = tuple[list[BillIssue], list[AuditEvent]]


def bill_operation(func: Callable[..., Outcome]) -> Callable[..., OperationResult]:
    """
    Wrap a mutation of a working copy into a full operation.

    The wrapped function receives the copy and returns (issues, events).
    If the copy ends up equal to the input, the input is returned as is.
    """
    name = func.__name__

    @functools.wraps(func)
    def wrapper(bill: Bill, *args: Any, **kwargs: Any) -> OperationResult:
        blocked = lifecycle.gate(bill, name)
        if blocked is not None:
            return OperationResult(
                bill=bill,
                issues=[blocked],
                events=[AuditEventBuilder.operation_rejected(
                    bill.id, name, bill.status.value
                )],
            )

        working = bill.model_copy(deep=True)
        issues, events = func(working, *args, **kwargs)

        changed = working != bill
        if not changed:
            return OperationResult(bill=bill, issues=issues, events=events)

        if working.payer is not None:
            violation = check_invariant(working)
            if violation is not None:
                issues.append(violation)
                events.append(AuditEventBuilder.invariant_violated(
                    working.id,
                    violation.details["grand_total"],
                    violation.details["allocated_total"],
                    violation.details["unexplained"],
                ))

        return OperationResult(
            bill=working,
            issues=issues,
            events=events,
            changed=True,
        )

    return wrapper


def _to_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _recompute(bill: Bill, item_id: str) -> list[BillIssue]:
    """Recompute a NORMAL item after one of its inputs changed."""
    item = structure.get_item(bill, item_id)
    if item.is_adjustment:
        return []
    return allocation.distribute_item(bill, item_id)


def _adjustment_warning(item_id: str, message: str) -> BillIssue:
    return BillIssue(
        category=IssueCategory.ALLOCATION,
        code=IssueCode.ADJUSTMENT_ITEM,
        message=message,
        item_id=item_id,
    )


# =============================================================================
# PARTICIPANT REGISTRY
# =============================================================================

@bill_operation
def add_participant(bill: Bill, participant: Participant) -> Outcome:
    """Add a participant; every NORMAL item is redistributed."""
    added = structure.add_participant(bill, participant)
    events = [AuditEventBuilder.participant_added(bill.id, added.id, added.display_name)]
    issues = []
    if bill.payer is not None:
        issues = allocation.distribute_all(bill)
    return issues, events


@bill_operation
def remove_participant(
    bill: Bill,
    participant_id: str,
    new_payer_id: Optional[str] = None,
) -> Outcome:
    """
    Remove a participant and their shares.

    Removing the payer without a replacement leaves the bill payer-less;
    amounts are not recomputed until a payer is set again.
    """
    was_payer = structure.remove_participant(bill, participant_id, new_payer_id)
    events = [AuditEventBuilder.participant_removed(
        bill.id, participant_id, was_payer and new_payer_id is None
    )]

    if bill.payer is None:
        return [BillIssue(
            category=IssueCategory.STRUCTURAL,
            code=IssueCode.PAYER_MISSING,
            message="The payer was removed; assign a new payer before settling",
            participant_id=participant_id,
        )], events

    if new_payer_id is not None and was_payer:
        events.append(AuditEventBuilder.payer_changed(bill.id, participant_id, new_payer_id))
    return allocation.distribute_all(bill), events


@bill_operation
def set_payer(bill: Bill, participant_id: str) -> Outcome:
    previous = structure.set_payer(bill, participant_id)
    if previous == participant_id:
        return [], []
    events = [AuditEventBuilder.payer_changed(bill.id, previous, participant_id)]
    return allocation.distribute_all(bill), events


# =============================================================================
# ITEM CATALOG
# =============================================================================

@bill_operation
def add_item(
    bill: Bill,
    name: str = "",
    item_type: ItemType = ItemType.NORMAL,
    fee: Amount = Decimal("0"),
    item_id: Optional[str] = None,
) -> Outcome:
    item = structure.add_item(
        bill,
        name=name,
        item_type=ItemType(item_type),
        fee=_to_decimal(fee),
        item_id=item_id,
    )
    events = [AuditEventBuilder.item_added(bill.id, item.id, item.name, item.item_type.value)]
    return _recompute(bill, item.id), events


@bill_operation
def remove_item(bill: Bill, item_id: str) -> Outcome:
    structure.remove_item(bill, item_id)
    return [], [AuditEventBuilder.item_removed(bill.id, item_id)]


@bill_operation
def update_item_fee(bill: Bill, item_id: str, fee: Amount) -> Outcome:
    item = structure.get_item(bill, item_id)
    item.fee = _to_decimal(fee)
    events = [AuditEventBuilder.item_updated(bill.id, item_id, "fee", item.fee)]
    return _recompute(bill, item_id), events


@bill_operation
def update_item_name(bill: Bill, item_id: str, name: str) -> Outcome:
    item = structure.get_item(bill, item_id)
    item.name = name.strip()
    return [], [AuditEventBuilder.item_updated(bill.id, item_id, "name", item.name)]


@bill_operation
def update_item_split_method(
    bill: Bill,
    item_id: str,
    split_method: SplitMethod,
) -> Outcome:
    item = structure.get_item(bill, item_id)
    if item.is_adjustment:
        return [_adjustment_warning(
            item_id,
            f"{item.name or 'Adjustment'} is entered per participant and has no split method",
        )], []

    item.split_method = SplitMethod(split_method)
    events = [AuditEventBuilder.item_updated(
        bill.id, item_id, "split_method", item.split_method.value
    )]
    return _recompute(bill, item_id), events


@bill_operation
def update_settings(bill: Bill, **changes: Any) -> Outcome:
    """
    Change bill settings and recompute every item.

    Accepts BillSettings field names as keyword arguments.
    """
    unknown = set(changes) - set(BillSettings.model_fields)
    if unknown:
        raise StructuralError(f"Unknown settings: {', '.join(sorted(unknown))}")

    bill.settings = BillSettings.model_validate({**bill.settings.model_dump(), **changes})
    events = [AuditEventBuilder.settings_updated(bill.id, changes)]
    issues = allocation.distribute_all(bill) if bill.payer is not None else []
    return issues, events


# =============================================================================
# SHARE MATRIX
# =============================================================================

@bill_operation
def toggle_share_include(
    bill: Bill,
    item_id: str,
    participant_id: str,
    include: Optional[bool] = None,
) -> Outcome:
    """
    Flip (or set) whether a participant takes part in an item.

    Adjustment rows are left alone: their shares count exactly when the
    entered amount is non-zero, so set_share_amount is the only way in.
    """
    item = structure.get_item(bill, item_id)
    share = structure.get_share(item, participant_id)

    if item.is_adjustment:
        return [_adjustment_warning(
            item_id,
            f"Enter an amount for {item.name or 'this adjustment'} instead; "
            "it counts for a participant only when the amount is not 0",
        )], []

    include = (not share.include) if include is None else include

    if not include and not bill.settings.allow_partial_participation:
        return [BillIssue(
            category=IssueCategory.ALLOCATION,
            code=IssueCode.PARTIAL_PARTICIPATION_DISABLED,
            message="This bill requires everyone to take part in every item",
            item_id=item_id,
            participant_id=participant_id,
        )], []

    share.include = include
    if not include:
        share.amount = Decimal("0")

    events = [AuditEventBuilder.share_updated(bill.id, item_id, participant_id, "include", include)]
    return _recompute(bill, item_id), events


@bill_operation
def toggle_share_lock(
    bill: Bill,
    item_id: str,
    participant_id: str,
    locked: Optional[bool] = None,
) -> Outcome:
    item = structure.get_item(bill, item_id)
    share = structure.get_share(item, participant_id)
    share.locked = (not share.locked) if locked is None else locked
    events = [AuditEventBuilder.share_updated(
        bill.id, item_id, participant_id, "locked", share.locked
    )]
    return _recompute(bill, item_id), events


@bill_operation
def toggle_share_paid(
    bill: Bill,
    item_id: str,
    participant_id: str,
    paid: Optional[bool] = None,
) -> Outcome:
    item = structure.get_item(bill, item_id)
    share = structure.get_share(item, participant_id)
    share.paid = (not share.paid) if paid is None else paid
    return [], [AuditEventBuilder.payment_updated(
        bill.id, participant_id, share.paid, item_id=item_id
    )]


@bill_operation
def set_participant_paid(bill: Bill, participant_id: str, paid: bool = True) -> Outcome:
    """Mark every included share of a participant paid (or unpaid)."""
    structure.get_participant(bill, participant_id)
    for item in bill.items:
        share = structure.get_share(item, participant_id)
        if share.include:
            share.paid = paid
    return [], [AuditEventBuilder.payment_updated(bill.id, participant_id, paid)]


@bill_operation
def set_share_percent(
    bill: Bill,
    item_id: str,
    participant_id: str,
    raw: str,
) -> Outcome:
    issues = allocation.set_share_percent(bill, item_id, participant_id, raw)
    share = structure.get_share(structure.get_item(bill, item_id), participant_id)
    events = [AuditEventBuilder.share_updated(
        bill.id, item_id, participant_id, "percent", share.raw_input
    )]
    return issues, events


@bill_operation
def set_share_amount(
    bill: Bill,
    item_id: str,
    participant_id: str,
    amount: Amount,
) -> Outcome:
    amount = _to_decimal(amount)
    issues = allocation.set_share_amount(bill, item_id, participant_id, amount)
    events = [AuditEventBuilder.share_updated(
        bill.id, item_id, participant_id, "amount", amount
    )]
    return issues, events


# =============================================================================
# ALLOCATION
# =============================================================================

@bill_operation
def distribute_item(bill: Bill, item_id: str) -> Outcome:
    item = structure.get_item(bill, item_id)
    if item.is_adjustment:
        return [_adjustment_warning(
            item_id,
            f"{item.name or 'Adjustment'} is entered per participant and is not split",
        )], []

    issues = allocation.distribute_item(bill, item_id)
    return issues, [AuditEventBuilder.item_distributed(
        bill.id, item_id, [i.message for i in issues]
    )]


@bill_operation
def distribute_all(bill: Bill) -> Outcome:
    issues = allocation.distribute_all(bill)
    return issues, [AuditEventBuilder.all_items_distributed(
        bill.id, len(bill.normal_items), [i.message for i in issues]
    )]


# =============================================================================
# LIFECYCLE
# =============================================================================

@bill_operation
def advance_status(bill: Bill, target: Optional[BillStatus] = None) -> Outcome:
    """
    Move the bill one status forward.

    With a target, the target must be the next status; going back or
    skipping a step is rejected.
    """
    previous = bill.status
    if target is None:
        issues = lifecycle.advance_status(bill)
    else:
        issues = lifecycle.transition_to(bill, BillStatus(target))

    if issues:
        return issues, [AuditEventBuilder.status_rejected(
            bill.id, previous.value, [i.message for i in issues]
        )]
    return [], [AuditEventBuilder.status_advanced(bill.id, previous.value, bill.status.value)]
