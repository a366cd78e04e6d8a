"""
Allocation Engine

Fills share amounts for NORMAL items from their fee and split method.
Adjustment rows (previous debt, discount) are never split; their amounts
are entered per participant.

Expected problems (nobody included, percentages not adding up, a clamped
entry) come back as BillIssue values. Only a missing payer or an unknown
id raises.
"""

import re
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Callable, Optional

import structlog

from splitbill.engine.errors import StructuralError
from splitbill.engine.structure import get_item, get_share, require_payer
from splitbill.models.bill import (
    PERCENT_TOTAL,
    Bill,
    BillSettings,
    Item,
    RoundingRule,
    SplitMethod,
)
from splitbill.models.issues import BillIssue, IssueCategory, IssueCode


logger = structlog.get_logger(__name__)

ROUNDING_MODES = {
    RoundingRule.UP: ROUND_CEILING,
    RoundingRule.DOWN: ROUND_FLOOR,
    RoundingRule.NEAREST: ROUND_HALF_UP,
}

# Allowed deviation of an item's percentages from 100 before it is flagged
PERCENT_TOLERANCE = Decimal("0.01")

# Auto-distributed percentages are rounded to one decimal place
PERCENT_STEP = Decimal("0.1")

_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))")


# =============================================================================
# HELPERS
# =============================================================================

def round_amount(value: Decimal, settings: BillSettings) -> Decimal:
    """Round to the currency's smallest unit using the bill's rounding rule."""
    return value.quantize(
        settings.currency_unit,
        rounding=ROUNDING_MODES[settings.rounding_rule],
    )


def parse_percent(raw: Optional[str]) -> Decimal:
    """
    Read a percentage the way a number input does.

    Takes the leading number and ignores the rest, so "12." reads as 12
    and "" or "abc" read as 0. Negative entries count as 0.
    """
    if not raw:
        return Decimal("0")
    match = _LEADING_NUMBER.match(raw)
    if match is None:
        return Decimal("0")
    value = Decimal(match.group(1))
    return value if value > 0 else Decimal("0")


def format_percent(value: Decimal) -> str:
    """Render a percentage without exponent or trailing zeros."""
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def percent_total(item: Item) -> Decimal:
    """Sum of the entered percentages over included shares."""
    return sum(
        (parse_percent(s.raw_input) for s in item.shares if s.include),
        Decimal("0"),
    )


def percent_mismatch(item: Item) -> bool:
    return abs(percent_total(item) - PERCENT_TOTAL) > PERCENT_TOLERANCE


def _issue(
    code: IssueCode,
    message: str,
    item: Item,
    severity: str = "warning",
    participant_id: Optional[str] = None,
    **details,
) -> BillIssue:
    return BillIssue(
        category=IssueCategory.ALLOCATION,
        code=code,
        message=message,
        severity=severity,
        item_id=item.id,
        participant_id=participant_id,
        details=details,
    )


def unallocated_issue(item: Item) -> BillIssue:
    return _issue(
        IssueCode.ITEM_UNALLOCATED,
        f"{item.name or 'Item'}: nobody is included, the fee is not allocated",
        item,
        fee=str(item.fee),
    )


def _zero_excluded(item: Item) -> None:
    for share in item.shares:
        if not share.include:
            share.amount = Decimal("0")


# =============================================================================
# SPLIT STRATEGIES
# =============================================================================

def _allocate_equal(item: Item, settings: BillSettings) -> list[BillIssue]:
    """
    Split the fee equally over included, unlocked shares.

    Every open share gets fee / |open shares|; locked shares keep their
    amount. Neither the locked amounts nor the rounding residual are
    corrected for, so a partly locked item shows up as a gap in the summary.
    """
    included = [s for s in item.shares if s.include]
    if not included:
        return [unallocated_issue(item)]

    locked_total = sum((s.amount for s in included if s.locked), Decimal("0"))
    open_shares = [s for s in included if not s.locked]
    if not open_shares:
        if locked_total != item.fee:
            return [_issue(
                IssueCode.LOCKED_TOTAL_MISMATCH,
                f"{item.name or 'Item'}: every share is locked and they add up "
                f"to {locked_total}, not {item.fee}",
                item,
                locked_total=str(locked_total),
            )]
        return []

    issues = []
    if item.fee >= 0 and locked_total > item.fee:
        logger.warning(
            "locked_amounts_exceed_fee",
            item_id=item.id,
            fee=str(item.fee),
            locked_total=str(locked_total),
        )
        issues.append(_issue(
            IssueCode.LOCKED_EXCEEDS_FEE,
            f"{item.name or 'Item'}: locked amounts ({locked_total}) exceed the fee ({item.fee})",
            item,
            locked_total=str(locked_total),
        ))

    each = round_amount(item.fee / len(open_shares), settings)
    for share in open_shares:
        share.amount = each

    allocated = locked_total + each * len(open_shares)
    if locked_total != 0 and allocated != item.fee:
        issues.append(_issue(
            IssueCode.LOCKED_TOTAL_MISMATCH,
            f"{item.name or 'Item'}: locked shares bring the item to "
            f"{allocated}, not {item.fee}",
            item,
            locked_total=str(locked_total),
            allocated=str(allocated),
        ))

    return issues


def _allocate_percent(item: Item, settings: BillSettings) -> list[BillIssue]:
    """
    Charge each included share its entered percentage of the fee.

    Percent amounts always follow the entered percentages; locks only
    matter for EQUAL items.
    """
    included = [s for s in item.shares if s.include]
    if not included:
        return [unallocated_issue(item)]

    total = percent_total(item)
    if percent_mismatch(item):
        if settings.auto_validate_percentages:
            logger.warning(
                "percent_recompute_rejected",
                item_id=item.id,
                percent_total=str(total),
            )
            return [_issue(
                IssueCode.PERCENT_MISMATCH,
                f"{item.name or 'Item'}: percentages must sum to 100% "
                f"(currently {total:.1f}%)",
                item,
                percent_total=str(total),
                applied=False,
            )]
        mismatch = [_issue(
            IssueCode.PERCENT_MISMATCH,
            f"{item.name or 'Item'}: percentages sum to {total:.1f}%, not 100%",
            item,
            percent_total=str(total),
            applied=True,
        )]
    else:
        mismatch = []

    for share in included:
        share.amount = round_amount(
            item.fee * parse_percent(share.raw_input) / PERCENT_TOTAL,
            settings,
        )
    return mismatch


Allocator = Callable[[Item, BillSettings], list[BillIssue]]

ALLOCATORS: dict[SplitMethod, Allocator] = {
    SplitMethod.EQUAL: _allocate_equal,
    SplitMethod.PERCENT: _allocate_percent,
}

_missing = set(SplitMethod) - set(ALLOCATORS)
if _missing:
    raise RuntimeError(f"No allocator for split methods: {sorted(m.value for m in _missing)}")


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def distribute_item(bill: Bill, item_id: str) -> list[BillIssue]:
    """
    Recompute one item's share amounts.

    Idempotent: running it twice without a mutation in between leaves the
    same amounts. Adjustment rows are left as entered.
    """
    require_payer(bill)
    item = get_item(bill, item_id)
    _zero_excluded(item)
    if item.is_adjustment:
        return []
    return ALLOCATORS[item.split_method](item, bill.settings)


def distribute_all(bill: Bill) -> list[BillIssue]:
    """Recompute every NORMAL item in catalog order."""
    require_payer(bill)
    issues = []
    for item in bill.normal_items:
        issues.extend(distribute_item(bill, item.id))
    return issues


def set_share_percent(
    bill: Bill,
    item_id: str,
    participant_id: str,
    raw: str,
) -> list[BillIssue]:
    """
    Record a typed percentage for one share of a PERCENT item.

    An entry that would push the item over 100% is clamped to what is left.
    A complete entry (not empty, not ending in ".") hands whatever is still
    unclaimed to the included shares nobody has typed into yet.
    """
    item = get_item(bill, item_id)
    if item.is_adjustment or item.split_method is not SplitMethod.PERCENT:
        raise StructuralError(
            f"Item {item_id} is not split by percentage",
            item_id=item_id,
        )
    share = get_share(item, participant_id)
    raw = (raw or "").strip()
    entered = parse_percent(raw)

    issues = []
    others = sum(
        (
            parse_percent(s.raw_input)
            for s in item.shares
            if s.participant_id != participant_id and s.include and s.raw_input
        ),
        Decimal("0"),
    )

    if others + entered > PERCENT_TOTAL:
        headroom = max(Decimal("0"), PERCENT_TOTAL - others)
        share.raw_input = format_percent(headroom)
        share.include = headroom > 0
        share.is_manual_entry = True
        if headroom < entered:
            logger.warning(
                "percent_clamped",
                item_id=item_id,
                participant_id=participant_id,
                entered=str(entered),
                applied=str(headroom),
            )
            issues.append(_issue(
                IssueCode.PERCENT_CLAMPED,
                f"Auto-adjusted to {format_percent(headroom)}% "
                f"(max remaining for {item.name or 'item'})",
                item,
                participant_id=participant_id,
                entered=str(entered),
                applied=str(headroom),
            ))
    else:
        share.raw_input = raw
        share.include = entered > 0
        share.is_manual_entry = entered > 0
        if entered > 0 and raw and not raw.endswith("."):
            issue = _auto_distribute(item, participant_id)
            if issue is not None:
                issues.append(issue)

    issues.extend(distribute_item(bill, item_id))
    return issues


def _auto_distribute(item: Item, participant_id: str) -> Optional[BillIssue]:
    """Spread the unclaimed percentage over included, untyped shares."""
    remaining = PERCENT_TOTAL - percent_total(item)
    if remaining <= 0:
        return None

    targets = [
        s for s in item.shares
        if s.participant_id != participant_id
        and s.include
        and not s.is_manual_entry
        and parse_percent(s.raw_input) == 0
    ]
    if not targets:
        return None

    each = (remaining / len(targets)).quantize(PERCENT_STEP, rounding=ROUND_HALF_UP)
    portions = [each] * len(targets)

    # Rounding up may overshoot; take the excess back from the last shares
    excess = sum(portions, Decimal("0")) - remaining
    for index in reversed(range(len(portions))):
        if excess <= 0:
            break
        cut = min(excess, portions[index])
        portions[index] -= cut
        excess -= cut

    for share, portion in zip(targets, portions):
        share.raw_input = format_percent(portion)
        share.is_manual_entry = False

    return _issue(
        IssueCode.PERCENT_AUTO_DISTRIBUTED,
        f"Auto-distributed {format_percent(remaining)}% among {len(targets)} "
        f"participants ({format_percent(each)}% each)",
        item,
        severity="info",
        remaining=str(remaining),
        participant_ids=[s.participant_id for s in targets],
    )


def set_share_amount(
    bill: Bill,
    item_id: str,
    participant_id: str,
    amount: Decimal,
) -> list[BillIssue]:
    """
    Enter an amount directly.

    On an adjustment row the amount is stored as is and the share counts
    only when it is non-zero. On an EQUAL item the amount is locked in and
    the fee is split again over the unlocked shares.
    """
    item = get_item(bill, item_id)
    share = get_share(item, participant_id)
    amount = Decimal(amount)

    if item.is_adjustment:
        share.amount = amount
        share.include = amount != 0
        if not share.include:
            share.amount = Decimal("0")
        return []

    if item.split_method is SplitMethod.PERCENT:
        raise StructuralError(
            f"Item {item_id} is split by percentage; enter a percentage instead",
            item_id=item_id,
            participant_id=participant_id,
        )

    share.amount = amount
    share.include = True
    share.locked = True
    return distribute_item(bill, item_id)
