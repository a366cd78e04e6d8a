"""
Settlement Aggregator

Read-only totals over the share matrix. Nothing is cached; every call
recomputes from the bill it is handed.

CRITICAL INVARIANT: the participant totals add up to the grand total.
Gaps the user can see (an item nobody is included in, percentages that
do not reach 100, an item with locked shares) are set aside; anything left over
beyond the rounding tolerance is an engine fault.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import structlog

from splitbill.engine.allocation import percent_mismatch, percent_total
from splitbill.engine.errors import InvariantViolation
from splitbill.engine.structure import require_payer
from splitbill.models.bill import Bill, Item, SplitMethod
from splitbill.models.issues import BillIssue, IssueCategory, IssueCode
from splitbill.models.settlement import (
    ItemAllocation,
    ParticipantTotal,
    SettlementSummary,
    Transfer,
)


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def item_subtotal(bill: Bill) -> Decimal:
    return sum((item.fee for item in bill.normal_items), ZERO)


def adjustment_total(bill: Bill) -> Decimal:
    return sum(
        (s.amount for item in bill.adjustment_items for s in item.shares if s.include),
        ZERO,
    )


def grand_total(bill: Bill) -> Decimal:
    """Item subtotal plus adjustments. Requires a payer."""
    require_payer(bill)
    return item_subtotal(bill) + adjustment_total(bill)


def participant_totals(bill: Bill) -> list[ParticipantTotal]:
    """Per-participant total, paid amount and outstanding, included shares only."""
    require_payer(bill)
    totals = []
    for participant in bill.participants:
        total = ZERO
        paid = ZERO
        for item in bill.items:
            share = item.share_for(participant.id)
            if share is None or not share.include:
                continue
            total += share.amount
            if share.paid:
                paid += share.amount

        totals.append(ParticipantTotal(
            participant_id=participant.id,
            display_name=participant.display_name,
            is_payer=participant.is_payer,
            total=total,
            paid_amount=paid,
            outstanding=total - paid,
        ))
    return totals


def _gap_reason(item: Item) -> Optional[IssueCode]:
    included = [s for s in item.shares if s.include]
    if not included:
        return IssueCode.ITEM_UNALLOCATED
    if item.split_method is SplitMethod.PERCENT:
        return IssueCode.PERCENT_MISMATCH if percent_mismatch(item) else None
    if any(s.locked for s in included):
        return IssueCode.LOCKED_TOTAL_MISMATCH
    return None


def item_allocations(bill: Bill) -> list[ItemAllocation]:
    """How much of each NORMAL item's fee reached the participants."""
    allocations = []
    for item in bill.normal_items:
        included = [s for s in item.shares if s.include]
        allocated = sum((s.amount for s in included), ZERO)
        reason = _gap_reason(item) if allocated != item.fee else None
        allocations.append(ItemAllocation(
            item_id=item.id,
            name=item.name,
            item_type=item.item_type,
            split_method=item.split_method,
            fee=item.fee,
            allocated=allocated,
            included_count=len(included),
            percent_total=(
                percent_total(item)
                if item.split_method is SplitMethod.PERCENT
                else None
            ),
            gap_reason=reason,
        ))
    return allocations


def rounding_tolerance(bill: Bill) -> Decimal:
    """
    One currency unit per rounded share.

    Each included share on a NORMAL item may be off by up to one unit;
    an item with nobody included still counts once.
    """
    unit = bill.settings.currency_unit
    slots = sum(
        max(1, sum(1 for s in item.shares if s.include))
        for item in bill.normal_items
    )
    return unit * slots


def summarize(bill: Bill) -> SettlementSummary:
    """Compute every bill-wide aggregate in one pass."""
    require_payer(bill)

    subtotal = item_subtotal(bill)
    adjustments = adjustment_total(bill)
    total = subtotal + adjustments
    totals = participant_totals(bill)
    allocations = item_allocations(bill)

    allocated = sum((t.total for t in totals), ZERO)
    discrepancy = total - allocated
    explained = sum((a.gap for a in allocations if a.gap_reason is not None), ZERO)

    settled = sum((t.paid_amount for t in totals), ZERO)
    outstanding = sum((t.outstanding for t in totals), ZERO)
    if allocated > 0:
        completion = int((settled / allocated * 100).to_integral_value(ROUND_HALF_UP))
        completion = min(100, max(0, completion))
    else:
        completion = 0

    return SettlementSummary(
        bill_id=bill.id,
        currency=bill.settings.currency,
        item_subtotal=subtotal,
        adjustment_total=adjustments,
        grand_total=total,
        participant_totals=totals,
        item_allocations=allocations,
        allocated_total=allocated,
        discrepancy=discrepancy,
        unexplained_discrepancy=discrepancy - explained,
        tolerance=rounding_tolerance(bill),
        settled_amount=settled,
        outstanding_amount=outstanding,
        fully_settled_count=sum(1 for t in totals if t.outstanding == 0),
        completion_percentage=completion,
        unallocated_item_ids=[
            a.item_id for a in allocations
            if a.gap_reason is IssueCode.ITEM_UNALLOCATED
        ],
    )


def check_invariant(
    bill: Bill,
    strict: Optional[bool] = None,
) -> Optional[BillIssue]:
    """
    Verify the participant totals add up to the grand total.

    Returns None when they do. Otherwise logs the violation and returns an
    error-level issue, or raises InvariantViolation in strict mode.
    strict defaults to the strict_invariants setting.
    """
    summary = summarize(bill)
    if summary.invariant_holds:
        return None

    logger.error(
        "invariant_violation",
        bill_id=bill.id,
        grand_total=str(summary.grand_total),
        allocated_total=str(summary.allocated_total),
        unexplained=str(summary.unexplained_discrepancy),
        tolerance=str(summary.tolerance),
    )

    if strict is None:
        from splitbill.config import get_settings
        strict = get_settings().app.strict_invariants

    if strict:
        raise InvariantViolation(
            grand_total=summary.grand_total,
            allocated_total=summary.allocated_total,
            unexplained=summary.unexplained_discrepancy,
            tolerance=summary.tolerance,
        )

    return BillIssue(
        category=IssueCategory.INVARIANT,
        code=IssueCode.INVARIANT_VIOLATION,
        message=(
            f"Participant totals ({summary.allocated_total}) do not match "
            f"the grand total ({summary.grand_total})"
        ),
        severity="error",
        details={
            "grand_total": str(summary.grand_total),
            "allocated_total": str(summary.allocated_total),
            "unexplained": str(summary.unexplained_discrepancy),
            "tolerance": str(summary.tolerance),
        },
    )


def assert_invariant(bill: Bill) -> SettlementSummary:
    """Like check_invariant, but always raises on a violation."""
    check_invariant(bill, strict=True)
    return summarize(bill)


def suggest_transfers(bill: Bill) -> list[Transfer]:
    """
    Who pays whom to settle up.

    Everyone owes the payer, who fronted the bill: each other participant
    with an outstanding balance pays it to the payer, and anyone whose
    total came out negative (more discount than purchases) is paid back.
    """
    payer = require_payer(bill)
    transfers = []
    for entry in participant_totals(bill):
        if entry.is_payer:
            continue
        if entry.outstanding > 0:
            transfers.append(Transfer(
                from_participant_id=entry.participant_id,
                to_participant_id=payer.id,
                amount=entry.outstanding,
            ))
        elif entry.total < 0:
            transfers.append(Transfer(
                from_participant_id=payer.id,
                to_participant_id=entry.participant_id,
                amount=-entry.total,
            ))
    return transfers
