"""
Settlement Models

Read-only aggregates derived from the share matrix. Nothing here is stored;
every instance is recomputed from the bill it describes.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from splitbill.models.bill import ItemType, SplitMethod
from splitbill.models.issues import IssueCode


class ParticipantTotal(BaseModel):
    """What one participant owes across the whole bill."""

    participant_id: str
    display_name: str
    is_payer: bool = False
    total: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    outstanding: Decimal = Decimal("0")

    @property
    def is_settled(self) -> bool:
        return self.outstanding == 0


class ItemAllocation(BaseModel):
    """How much of one item's value reached the participants."""

    item_id: str
    name: str
    item_type: ItemType
    split_method: SplitMethod
    fee: Decimal
    allocated: Decimal
    included_count: int = Field(ge=0)
    percent_total: Optional[Decimal] = None

    # Set when the gap between fee and allocated is explained
    # by a user-visible condition rather than an engine fault.
    gap_reason: Optional[IssueCode] = None

    @property
    def gap(self) -> Decimal:
        return self.fee - self.allocated


class Transfer(BaseModel):
    """A suggested payment between two participants."""

    from_participant_id: str
    to_participant_id: str
    amount: Decimal = Field(gt=0)


class SettlementSummary(BaseModel):
    """
    Bill-wide aggregates.

    discrepancy is grand_total minus the sum of participant totals.
    unexplained_discrepancy removes gaps the user can see and fix
    (unallocated items, percentages that don't add up); whatever is left
    beyond the rounding tolerance means the engine is wrong.
    """

    bill_id: str
    currency: str

    item_subtotal: Decimal
    adjustment_total: Decimal
    grand_total: Decimal

    participant_totals: list[ParticipantTotal] = Field(default_factory=list)
    item_allocations: list[ItemAllocation] = Field(default_factory=list)

    allocated_total: Decimal
    discrepancy: Decimal
    unexplained_discrepancy: Decimal
    tolerance: Decimal

    settled_amount: Decimal
    outstanding_amount: Decimal
    fully_settled_count: int = Field(ge=0)
    completion_percentage: int = Field(ge=0)

    unallocated_item_ids: list[str] = Field(default_factory=list)

    @property
    def invariant_holds(self) -> bool:
        return abs(self.unexplained_discrepancy) <= self.tolerance

    def total_for(self, participant_id: str) -> Optional[ParticipantTotal]:
        for entry in self.participant_totals:
            if entry.participant_id == participant_id:
                return entry
        return None
