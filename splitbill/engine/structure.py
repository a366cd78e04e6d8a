"""
Structural Sync

Keeps the participant registry, the item catalog and the share matrix
consistent with each other. Every item carries exactly one share per
participant; adding or removing either side adds or removes the matching
shares in the same step.

All functions here mutate the bill they are given. Callers that need the
original left untouched pass in a copy (see splitbill.operations).
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import uuid4

import structlog

from splitbill.engine.errors import StructuralError
from splitbill.models.bill import (
    Bill,
    BillSettings,
    BillStatus,
    Item,
    ItemShare,
    ItemType,
    Participant,
    PersonRecord,
)


logger = structlog.get_logger(__name__)

PROFILE_FIELDS = (
    "account_number",
    "bank_code",
    "account_holder",
    "qr_url",
    "bank_name",
    "bank_logo_url",
)

DEFAULT_ADJUSTMENT_ROWS = (
    ("Previous Debt", ItemType.CARRY_OVER),
    ("Discount", ItemType.SPECIAL),
)


# =============================================================================
# LOOKUPS
# =============================================================================

def get_participant(bill: Bill, participant_id: str) -> Participant:
    participant = bill.participant(participant_id)
    if participant is None:
        raise StructuralError(
            f"Unknown participant: {participant_id}",
            participant_id=participant_id,
        )
    return participant


def get_item(bill: Bill, item_id: str) -> Item:
    item = bill.item(item_id)
    if item is None:
        raise StructuralError(f"Unknown item: {item_id}", item_id=item_id)
    return item


def get_share(item: Item, participant_id: str) -> ItemShare:
    share = item.share_for(participant_id)
    if share is None:
        raise StructuralError(
            f"Item {item.id} has no share for {participant_id}",
            item_id=item.id,
            participant_id=participant_id,
        )
    return share


def require_payer(bill: Bill) -> Participant:
    """
    Return the payer, or raise.

    Allocation and settlement are meaningless without a payer, so they
    call this before doing any arithmetic.
    """
    payer = bill.payer
    if payer is None:
        raise StructuralError("Bill has no payer; assign one before settling")
    return payer


def check_bijection(bill: Bill) -> None:
    """Verify every item has exactly one share per participant."""
    expected = {p.id for p in bill.participants}
    if len(expected) != len(bill.participants):
        raise StructuralError("Participant ids must be unique")

    for item in bill.items:
        share_ids = [s.participant_id for s in item.shares]
        if len(share_ids) != len(set(share_ids)) or set(share_ids) != expected:
            raise StructuralError(
                f"Item {item.id} shares do not match the participants",
                item_id=item.id,
            )


# =============================================================================
# ORDERING
# =============================================================================

def renumber(bill: Bill) -> None:
    """Keep the payer last and make order fields match list positions."""
    bill.participants.sort(key=lambda p: p.is_payer)
    for index, participant in enumerate(bill.participants):
        participant.order = index
    for index, item in enumerate(bill.items):
        item.order = index


def new_share(item: Item, participant_id: str, settings: BillSettings) -> ItemShare:
    """Share for a participant that joins an existing item."""
    if item.is_adjustment:
        include = False
    else:
        include = (
            settings.include_new_participants
            or not settings.allow_partial_participation
        )
    return ItemShare(participant_id=participant_id, include=include)


# =============================================================================
# PARTICIPANT REGISTRY
# =============================================================================

def add_participant(bill: Bill, participant: Participant) -> Participant:
    """
    Register a participant and give them a share on every item.

    The new participant is placed before the payer. A participant added
    with is_payer set takes over as payer.
    """
    if bill.participant(participant.id) is not None:
        raise StructuralError(
            f"Participant already on the bill: {participant.id}",
            participant_id=participant.id,
        )

    participant = participant.model_copy()
    if participant.is_payer:
        for existing in bill.participants:
            existing.is_payer = False

    bill.participants.append(participant)
    for item in bill.items:
        item.shares.append(new_share(item, participant.id, bill.settings))

    renumber(bill)
    check_bijection(bill)
    return participant


def remove_participant(
    bill: Bill,
    participant_id: str,
    new_payer_id: Optional[str] = None,
) -> bool:
    """
    Remove a participant and their share on every item.

    Returns True if the removed participant was the payer. Without a
    new_payer_id that leaves the bill payer-less until set_payer is called.
    """
    participant = get_participant(bill, participant_id)
    if new_payer_id is not None:
        if new_payer_id == participant_id:
            raise StructuralError(
                "Cannot hand the payer role to the participant being removed",
                participant_id=participant_id,
            )
        get_participant(bill, new_payer_id)

    was_payer = participant.is_payer
    bill.participants = [p for p in bill.participants if p.id != participant_id]
    for item in bill.items:
        item.shares = [s for s in item.shares if s.participant_id != participant_id]

    if new_payer_id is not None:
        set_payer(bill, new_payer_id)
    elif was_payer:
        logger.warning(
            "payer_removed",
            bill_id=bill.id,
            participant_id=participant_id,
        )

    renumber(bill)
    check_bijection(bill)
    return was_payer


def set_payer(bill: Bill, participant_id: str) -> Optional[str]:
    """Make participant_id the only payer. Returns the previous payer id."""
    target = get_participant(bill, participant_id)
    previous = bill.payer
    for participant in bill.participants:
        participant.is_payer = False
    target.is_payer = True
    renumber(bill)
    return previous.id if previous else None


def merge_roster(bill: Bill, people: Iterable[PersonRecord]) -> list[str]:
    """
    Fill missing payment profile fields from the people directory.

    Only participants already on the bill are touched and values they
    already carry are kept. Returns the ids of updated participants.
    """
    updated = []
    records = {person.id: person for person in people}
    for participant in bill.participants:
        record = records.get(participant.id)
        if record is None:
            continue

        changed = False
        for field in PROFILE_FIELDS:
            value = getattr(record, field)
            if value and not getattr(participant, field):
                setattr(participant, field, value)
                changed = True
        if changed:
            updated.append(participant.id)

    return updated


# =============================================================================
# ITEM CATALOG
# =============================================================================

def add_item(
    bill: Bill,
    name: str = "",
    item_type: ItemType = ItemType.NORMAL,
    fee: Decimal = Decimal("0"),
    item_id: Optional[str] = None,
) -> Item:
    """
    Add an item with one share per participant.

    NORMAL items start with everyone included and go after the last NORMAL
    item; adjustment rows start with nobody included and go at the end.
    """
    item_id = item_id or uuid4().hex
    if bill.item(item_id) is not None:
        raise StructuralError(f"Item already on the bill: {item_id}", item_id=item_id)

    include = not item_type.is_adjustment
    item = Item(
        id=item_id,
        name=name,
        fee=fee,
        item_type=item_type,
        split_method=bill.settings.default_split_method,
        shares=[
            ItemShare(participant_id=p.id, include=include)
            for p in bill.participants
        ],
    )

    if item_type.is_adjustment:
        bill.items.append(item)
    else:
        position = 0
        for index, existing in enumerate(bill.items):
            if not existing.is_adjustment:
                position = index + 1
        bill.items.insert(position, item)

    renumber(bill)
    check_bijection(bill)
    return item


def remove_item(bill: Bill, item_id: str) -> Item:
    item = get_item(bill, item_id)
    bill.items = [i for i in bill.items if i.id != item_id]
    renumber(bill)
    return item


# =============================================================================
# FACTORY
# =============================================================================

def new_bill(
    people: Iterable[PersonRecord],
    payer_id: str,
    title: str = "",
    settings: Optional[BillSettings] = None,
    bill_id: Optional[str] = None,
) -> Bill:
    """
    Start a DRAFT bill for a roster.

    The bill comes with the two standard adjustment rows (previous debt and
    discount) and no purchase items.
    """
    participants = []
    for person in people:
        participant = Participant(
            id=person.id,
            display_name=person.display_name,
            is_payer=person.id == payer_id,
        )
        for field in PROFILE_FIELDS:
            setattr(participant, field, getattr(person, field))
        participants.append(participant)

    if not any(p.is_payer for p in participants):
        raise StructuralError(
            f"Payer {payer_id} is not in the roster",
            participant_id=payer_id,
        )

    bill = Bill(
        title=title,
        status=BillStatus.DRAFT,
        settings=settings or BillSettings.from_config(),
        participants=participants,
    )
    if bill_id:
        bill.id = bill_id

    for name, item_type in DEFAULT_ADJUSTMENT_ROWS:
        add_item(bill, name=name, item_type=item_type)

    renumber(bill)
    return bill
