"""
Shared fixtures for Split Bill tests.

Bills are built through the same factory and operations the application
uses, so fixtures never hand-assemble share matrices.
"""

from decimal import Decimal

import pytest

from splitbill import operations
from splitbill.config import get_settings
from splitbill.engine.structure import new_bill
from splitbill.models.bill import (
    Bill,
    BillSettings,
    ItemType,
    PersonRecord,
    SplitMethod,
)


ENV_VARS = (
    "SPLITBILL_BILL_DEFAULT_SPLIT_METHOD",
    "SPLITBILL_BILL_ROUNDING_RULE",
    "SPLITBILL_BILL_CURRENCY",
    "SPLITBILL_BILL_ALLOW_PARTIAL_PARTICIPATION",
    "SPLITBILL_BILL_AUTO_VALIDATE_PERCENTAGES",
    "SPLITBILL_BILL_INCLUDE_NEW_PARTICIPANTS",
    "SPLITBILL_BILL_MIN_PARTICIPANTS_PER_ITEM",
    "SPLITBILL_AUTOSAVE_ENABLED",
    "SPLITBILL_AUTOSAVE_DEBOUNCE_SECONDS",
    "GOOGLE_SHEETS_CREDENTIALS_PATH",
    "GOOGLE_SHEETS_SPREADSHEET_ID",
    "DEBUG_MODE",
    "STRICT_INVARIANTS",
    "DISTRIBUTE_ALL_DELAY_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Run every test against default configuration."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def people() -> list[PersonRecord]:
    return [
        PersonRecord(id="an", display_name="An"),
        PersonRecord(id="binh", display_name="Binh"),
        PersonRecord(id="chi", display_name="Chi"),
        PersonRecord(
            id="dung",
            display_name="Dung",
            account_number="0123456789",
            bank_code="VCB",
            bank_name="Vietcombank",
            account_holder="NGUYEN VAN DUNG",
            qr_url="https://img.vietqr.io/image/VCB-0123456789.png",
        ),
    ]


@pytest.fixture
def bill(people) -> Bill:
    """Four participants, Dung pays, only the two default adjustment rows."""
    return new_bill(people, payer_id="dung", title="Team lunch", settings=BillSettings())


@pytest.fixture
def pair_bill(people) -> Bill:
    """Two participants, Dung pays."""
    return new_bill(
        [people[0], people[3]],
        payer_id="dung",
        title="Coffee",
        settings=BillSettings(),
    )


@pytest.fixture
def add_normal():
    """Add a NORMAL item with a fixed id and return the new bill."""
    def _add(
        bill: Bill,
        item_id: str,
        fee,
        split_method: SplitMethod = SplitMethod.EQUAL,
    ) -> Bill:
        result = operations.add_item(bill, name=item_id.title(), fee=Decimal(fee), item_id=item_id)
        bill = result.bill
        if split_method is not SplitMethod.EQUAL:
            bill = operations.update_item_split_method(bill, item_id, split_method).bill
        return bill
    return _add


def adjustment_id(bill: Bill, item_type: ItemType) -> str:
    return next(item.id for item in bill.items if item.item_type is item_type)


@pytest.fixture
def discount_id(bill) -> str:
    return adjustment_id(bill, ItemType.SPECIAL)


@pytest.fixture
def carry_over_id(bill) -> str:
    return adjustment_id(bill, ItemType.CARRY_OVER)


@pytest.fixture
def amounts():
    """Share amounts of one item keyed by participant id."""
    def _amounts(bill: Bill, item_id: str) -> dict[str, Decimal]:
        return {s.participant_id: s.amount for s in bill.item(item_id).shares}
    return _amounts
