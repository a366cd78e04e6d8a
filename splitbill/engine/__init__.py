"""
Bill Engine Package

Synchronous, side-effect free (apart from mutating the bill it is given)
computation over the bill aggregate: structural sync, allocation,
settlement and the lifecycle state machine.
"""

from splitbill.engine.errors import (
    InvariantViolation,
    SplitBillError,
    StructuralError,
)
from splitbill.engine.structure import (
    check_bijection,
    merge_roster,
    new_bill,
    require_payer,
)
from splitbill.engine.allocation import (
    distribute_all,
    distribute_item,
    parse_percent,
    round_amount,
)
from splitbill.engine.settlement import (
    assert_invariant,
    check_invariant,
    grand_total,
    participant_totals,
    suggest_transfers,
    summarize,
)
from splitbill.engine.lifecycle import (
    advance_status,
    can_advance,
    check_preconditions,
    next_status,
)

__all__ = [
    # Errors
    "InvariantViolation",
    "SplitBillError",
    "StructuralError",
    # Structure
    "check_bijection",
    "merge_roster",
    "new_bill",
    "require_payer",
    # Allocation
    "distribute_all",
    "distribute_item",
    "parse_percent",
    "round_amount",
    # Settlement
    "assert_invariant",
    "check_invariant",
    "grand_total",
    "participant_totals",
    "suggest_transfers",
    "summarize",
    # Lifecycle
    "advance_status",
    "can_advance",
    "check_preconditions",
    "next_status",
]
