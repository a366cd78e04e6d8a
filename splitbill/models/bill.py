"""
Core Data Models for Split Bill

These models define the bill aggregate that every engine component reads:
participants, items, the share matrix between them, and bill settings.
They are designed to:
1. Enforce type safety at runtime
2. Keep money exact (Decimal, never float)
3. Serialize to the same camelCase document the persistence layer stores
4. Reject malformed share matrices at load time

DESIGN DECISION: Python attributes are snake_case, the wire document is
camelCase (isPayer, splitMethod, rawInput). Both spellings are accepted on input.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class BillStatus(str, Enum):
    """
    Bill lifecycle status.

    Transitions are forward-only, one step at a time:
    DRAFT → ACTIVE → COMPLETED → SETTLED
    """
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    SETTLED = "SETTLED"


class ItemType(str, Enum):
    """
    Item kinds.

    NORMAL items are purchases that count toward the subtotal.
    CARRY_OVER (previous debt) and SPECIAL (discount) are adjustments whose
    per-participant amounts are entered directly.
    """
    NORMAL = "NORMAL"
    CARRY_OVER = "CARRY_OVER"
    SPECIAL = "SPECIAL"

    @property
    def is_adjustment(self) -> bool:
        return self is not ItemType.NORMAL


class SplitMethod(str, Enum):
    """How a normal item's fee is divided among included shares."""
    EQUAL = "EQUAL"
    PERCENT = "PERCENT"


class RoundingRule(str, Enum):
    """Rounding applied to each computed share amount."""
    UP = "UP"
    DOWN = "DOWN"
    NEAREST = "NEAREST"


# Number of decimal places of the smallest unit for each currency.
# Anything not listed is assumed to have cents.
CURRENCY_MINOR_UNITS = {
    "VND": 0,
    "JPY": 0,
    "KRW": 0,
    "IDR": 0,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "INR": 2,
    "SGD": 2,
    "THB": 2,
}

PERCENT_TOTAL = Decimal("100")


# =============================================================================
# PARTICIPANTS
# =============================================================================

class Participant(BaseModel):
    """
    A person on the bill.

    The payment profile fields are opaque pass-through data looked up from
    the people directory; the engine never computes with them.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Stable participant identifier"
    )
    display_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Name shown on the bill"
    )
    is_payer: bool = Field(
        default=False,
        description="Whether this participant paid the bill up front"
    )
    order: int = Field(
        default=0,
        ge=0,
        description="Ordinal position in the registry"
    )
    completed: bool = Field(
        default=False,
        description="Marked done by the bill owner"
    )

    # Payment profile
    account_number: Optional[str] = None
    bank_code: Optional[str] = None
    account_holder: Optional[str] = None
    qr_url: Optional[str] = None
    bank_name: Optional[str] = None
    bank_logo_url: Optional[str] = None


class PersonRecord(BaseModel):
    """
    Identity and payment profile of a person as held by the people directory.

    Merged read-only into matching participants.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1, max_length=100)
    account_number: Optional[str] = None
    bank_code: Optional[str] = None
    account_holder: Optional[str] = None
    qr_url: Optional[str] = None
    bank_name: Optional[str] = None
    bank_logo_url: Optional[str] = None
    active: bool = True


# =============================================================================
# ITEMS AND SHARES
# =============================================================================

class ItemShare(BaseModel):
    """
    One participant's state for one item.

    raw_input keeps the percentage exactly as typed so that a half-entered
    value ("12.") is never coerced behind the user's back.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    participant_id: str = Field(..., min_length=1)
    include: bool = True
    locked: bool = False
    paid: bool = False
    raw_input: Optional[str] = None
    amount: Decimal = Decimal("0")
    is_manual_entry: bool = False

    @field_validator('amount', mode='before')
    @classmethod
    def missing_amount_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @model_validator(mode='after')
    def excluded_share_has_no_amount(self) -> 'ItemShare':
        """Excluded shares never carry an amount."""
        if not self.include and self.amount != 0:
            self.amount = Decimal("0")
        return self


class Item(BaseModel):
    """A chargeable entry or an adjustment row of the bill."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(..., min_length=1)
    name: str = Field(
        default="",
        max_length=100,
        description="Display name of the item"
    )
    fee: Decimal = Field(
        default=Decimal("0"),
        description="Total fee; negative for discounts"
    )
    split_method: SplitMethod = SplitMethod.EQUAL
    item_type: ItemType = Field(
        default=ItemType.NORMAL,
        alias="type",
    )
    order: int = Field(default=0, ge=0)
    shares: list[ItemShare] = Field(default_factory=list)

    @field_validator('fee', mode='before')
    @classmethod
    def missing_fee_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @model_validator(mode='after')
    def adjustment_include_follows_amount(self) -> 'Item':
        """On adjustment rows a share counts exactly when its amount is non-zero."""
        if self.is_adjustment:
            for share in self.shares:
                share.include = share.amount != 0
        return self

    @property
    def is_adjustment(self) -> bool:
        return self.item_type.is_adjustment

    def share_for(self, participant_id: str) -> Optional[ItemShare]:
        for share in self.shares:
            if share.participant_id == participant_id:
                return share
        return None


# =============================================================================
# SETTINGS
# =============================================================================

class BillSettings(BaseModel):
    """
    Per-bill configuration.

    rounding_rule and currency are read by the allocation engine; the policy
    toggles gate operations and feed the bill validator.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    default_split_method: SplitMethod = SplitMethod.EQUAL
    rounding_rule: RoundingRule = RoundingRule.NEAREST
    currency: str = Field(default="VND", min_length=3, max_length=3)
    allow_partial_participation: bool = True
    min_participants_per_item: Optional[int] = Field(default=None, ge=1)
    auto_validate_percentages: bool = False
    require_payment_confirmation: bool = False
    include_qr_in_export: bool = False
    include_new_participants: bool = True

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator(
        'auto_validate_percentages',
        'require_payment_confirmation',
        'include_qr_in_export',
        mode='before',
    )
    @classmethod
    def missing_toggle_is_off(cls, v: Any) -> Any:
        return False if v is None else v

    @property
    def minor_units(self) -> int:
        return CURRENCY_MINOR_UNITS.get(self.currency, 2)

    @property
    def currency_unit(self) -> Decimal:
        """Smallest representable amount, e.g. 1 for VND, 0.01 for USD."""
        return Decimal(1).scaleb(-self.minor_units)

    @classmethod
    def from_config(cls) -> 'BillSettings':
        """Build settings for a new bill from the configured defaults."""
        from splitbill.config import get_settings

        defaults = get_settings().bill_defaults
        return cls(
            default_split_method=SplitMethod(defaults.default_split_method),
            rounding_rule=RoundingRule(defaults.rounding_rule),
            currency=defaults.currency,
            allow_partial_participation=defaults.allow_partial_participation,
            auto_validate_percentages=defaults.auto_validate_percentages,
            include_new_participants=defaults.include_new_participants,
            min_participants_per_item=defaults.min_participants_per_item,
        )


# =============================================================================
# BILL AGGREGATE
# =============================================================================

class Bill(BaseModel):
    """
    The aggregate root.

    CRITICAL: every item's shares must map one-to-one onto the participants.
    A document that breaks this is rejected at load time.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(default_factory=lambda: uuid4().hex)
    title: str = Field(default="", max_length=100)
    status: BillStatus = BillStatus.DRAFT
    settings: BillSettings = Field(default_factory=BillSettings)
    participants: list[Participant] = Field(default_factory=list)
    items: list[Item] = Field(default_factory=list)
    last_saved: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_share_matrix(self) -> 'Bill':
        """Validate registry uniqueness and the share bijection."""
        participant_ids = [p.id for p in self.participants]
        if len(set(participant_ids)) != len(participant_ids):
            raise ValueError("Participant ids must be unique")

        if sum(1 for p in self.participants if p.is_payer) > 1:
            raise ValueError("A bill cannot have more than one payer")

        item_ids = [item.id for item in self.items]
        if len(set(item_ids)) != len(item_ids):
            raise ValueError("Item ids must be unique")

        expected = set(participant_ids)
        for item in self.items:
            share_ids = [s.participant_id for s in item.shares]
            if len(set(share_ids)) != len(share_ids):
                raise ValueError(f"Item {item.id} has duplicate shares")
            if set(share_ids) != expected:
                raise ValueError(
                    f"Item {item.id} shares do not match the participants"
                )

        return self

    @property
    def payer(self) -> Optional[Participant]:
        return next((p for p in self.participants if p.is_payer), None)

    @property
    def normal_items(self) -> list[Item]:
        return [item for item in self.items if not item.is_adjustment]

    @property
    def adjustment_items(self) -> list[Item]:
        return [item for item in self.items if item.is_adjustment]

    def participant(self, participant_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == participant_id), None)

    def item(self, item_id: str) -> Optional[Item]:
        return next((i for i in self.items if i.id == item_id), None)

    @classmethod
    def from_document(cls, data: Union[dict, str]) -> 'Bill':
        """Load a bill from its stored document (dict or JSON text)."""
        if isinstance(data, str):
            data = json.loads(data)
        return cls.model_validate(data)

    def to_document(self) -> dict:
        """Serialize to the camelCase document shape."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
