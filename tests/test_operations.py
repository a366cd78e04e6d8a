"""
Tests for the collaborator operations.

Operations never touch the bill they are given; each test keeps using
result.bill for the next step.
"""

from decimal import Decimal

import pytest

from splitbill import operations
from splitbill.engine import settlement
from splitbill.engine.errors import StructuralError
from splitbill.models.audit import AuditEventType
from splitbill.models.bill import (
    BillStatus,
    Participant,
    RoundingRule,
    SplitMethod,
)
from splitbill.models.issues import IssueCode


def exclude(bill, item_id, *participant_ids):
    for pid in participant_ids:
        bill = operations.toggle_share_include(bill, item_id, pid, include=False).bill
    return bill


def event_types(result) -> list[AuditEventType]:
    return [event.event_type for event in result.events]


class TestScenarios:
    """End-to-end examples of splitting a bill."""

    def test_single_participant_item(self, bill, add_normal, amounts):
        bill = add_normal(bill, "cake", 39200)
        bill = exclude(bill, "cake", "binh", "chi", "dung")

        assert amounts(bill, "cake") == {
            "an": Decimal("39200"),
            "binh": Decimal("0"),
            "chi": Decimal("0"),
            "dung": Decimal("0"),
        }
        assert settlement.grand_total(bill) == Decimal("39200")

    @pytest.mark.parametrize("rule,each,allocated", [
        (RoundingRule.NEAREST, Decimal("16333"), Decimal("48999")),
        (RoundingRule.UP, Decimal("16334"), Decimal("49002")),
        (RoundingRule.DOWN, Decimal("16333"), Decimal("48999")),
    ])
    def test_rounding_residual(self, bill, add_normal, amounts, rule, each, allocated):
        bill = operations.update_settings(bill, rounding_rule=rule).bill
        bill = add_normal(bill, "hotpot", 49000)
        result = operations.toggle_share_include(bill, "hotpot", "dung")

        shares = amounts(result.bill, "hotpot")
        assert shares["an"] == shares["binh"] == shares["chi"] == each
        summary = settlement.summarize(result.bill)
        assert summary.allocated_total == allocated
        assert summary.invariant_holds
        assert not result.issues_with(IssueCode.INVARIANT_VIOLATION)

    def test_percent_clamped_to_headroom(self, bill, add_normal, amounts):
        bill = add_normal(bill, "dinner", 100000, SplitMethod.PERCENT)
        bill = exclude(bill, "dinner", "chi", "dung")
        bill = operations.set_share_percent(bill, "dinner", "an", "60").bill

        result = operations.set_share_percent(bill, "dinner", "binh", "50")

        assert result.issues_with(IssueCode.PERCENT_CLAMPED)
        assert any("Auto-adjusted to 40%" in w for w in result.warnings)
        assert amounts(result.bill, "dinner") == {
            "an": Decimal("60000"),
            "binh": Decimal("40000"),
            "chi": Decimal("0"),
            "dung": Decimal("0"),
        }

    def test_discount_for_payer(self, bill, add_normal, discount_id):
        bill = add_normal(bill, "pizza", 40000)
        before = {t.participant_id: t.total for t in settlement.participant_totals(bill)}

        bill = operations.set_share_amount(bill, discount_id, "dung", "-6500").bill

        after = {t.participant_id: t.total for t in settlement.participant_totals(bill)}
        assert settlement.grand_total(bill) == Decimal("33500")
        assert after["dung"] == before["dung"] - Decimal("6500")
        for pid in ("an", "binh", "chi"):
            assert after[pid] == before[pid]

    def test_full_lifecycle(self, pair_bill, add_normal):
        bill = add_normal(pair_bill, "coffee", 10000)

        for expected in (BillStatus.ACTIVE, BillStatus.COMPLETED):
            result = operations.advance_status(bill)
            assert result.issues == []
            bill = result.bill
            assert bill.status == expected

        bill = operations.set_participant_paid(bill, "an").bill
        bill = operations.set_participant_paid(bill, "dung").bill
        result = operations.advance_status(bill, BillStatus.SETTLED)
        assert result.bill.status == BillStatus.SETTLED
        assert event_types(result) == [AuditEventType.STATUS_ADVANCED]

        back = operations.advance_status(result.bill, BillStatus.DRAFT)
        assert back.issues_with(IssueCode.ILLEGAL_TRANSITION)
        assert back.bill.status == BillStatus.SETTLED
        assert back.changed is False
        assert event_types(back) == [AuditEventType.STATUS_REJECTED]

    def test_payer_removed_without_replacement(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000)
        result = operations.remove_participant(bill, "dung")

        assert result.changed
        assert result.issues_with(IssueCode.PAYER_MISSING)
        assert result.bill.payer is None

        with pytest.raises(StructuralError):
            operations.distribute_all(result.bill)
        with pytest.raises(StructuralError):
            settlement.grand_total(result.bill)
        with pytest.raises(StructuralError):
            settlement.summarize(result.bill)

        fixed = operations.set_payer(result.bill, "an").bill
        assert settlement.grand_total(fixed) == Decimal("40000")


class TestPurity:
    """Operations leave their input alone."""

    def test_input_not_modified(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000)
        snapshot = bill.model_copy(deep=True)

        result = operations.toggle_share_include(bill, "pizza", "an")

        assert result.changed
        assert bill == snapshot
        assert result.bill.item("pizza").share_for("an").include is False

    def test_error_leaves_input_intact(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000)
        snapshot = bill.model_copy(deep=True)

        with pytest.raises(StructuralError):
            operations.toggle_share_include(bill, "pizza", "nobody")
        assert bill == snapshot

    def test_unchanged_returns_same_bill(self, bill):
        result = operations.set_payer(bill, "dung")
        assert result.bill is bill
        assert result.changed is False
        assert result.events == []

    def test_distribute_all_idempotent(self, bill, add_normal):
        bill = add_normal(bill, "hotpot", 49000)
        bill = operations.distribute_all(bill).bill

        again = operations.distribute_all(bill)
        assert again.changed is False
        assert again.bill is bill


class TestStatusGate:
    """Operations are refused once the bill has moved on."""

    def test_completed_bill_refuses_edits(self, pair_bill, add_normal):
        bill = add_normal(pair_bill, "coffee", 10000)
        bill = operations.advance_status(bill).bill
        bill = operations.advance_status(bill).bill

        result = operations.add_item(bill, name="Cake", fee=5000)

        assert result.bill is bill
        assert result.issues_with(IssueCode.STATUS_LOCKED)
        assert event_types(result) == [AuditEventType.OPERATION_REJECTED]

    def test_completed_bill_takes_payments(self, pair_bill, add_normal):
        bill = add_normal(pair_bill, "coffee", 10000)
        bill = operations.advance_status(bill).bill
        bill = operations.advance_status(bill).bill

        result = operations.toggle_share_paid(bill, "coffee", "an")
        assert result.changed
        assert result.bill.item("coffee").share_for("an").paid is True

    def test_settled_bill_refuses_payments(self, bill):
        bill = bill.model_copy(update={"status": BillStatus.SETTLED})
        result = operations.set_participant_paid(bill, "an", paid=False)
        assert result.issues_with(IssueCode.STATUS_LOCKED)
        assert result.changed is False


class TestRegistryOperations:
    """Tests for participant operations."""

    def test_add_participant_redistributes(self, bill, add_normal, amounts):
        bill = add_normal(bill, "pizza", 50000)
        result = operations.add_participant(bill, Participant(id="em", display_name="Em"))

        assert set(amounts(result.bill, "pizza").values()) == {Decimal("10000")}
        assert event_types(result) == [AuditEventType.PARTICIPANT_ADDED]

    def test_remove_participant_redistributes(self, bill, add_normal, amounts):
        bill = add_normal(bill, "pizza", 30000)
        result = operations.remove_participant(bill, "chi")

        assert amounts(result.bill, "pizza") == {
            "an": Decimal("10000"),
            "binh": Decimal("10000"),
            "dung": Decimal("10000"),
        }

    def test_remove_payer_with_replacement(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 30000)
        result = operations.remove_participant(bill, "dung", new_payer_id="an")

        assert result.bill.payer.id == "an"
        assert event_types(result) == [
            AuditEventType.PARTICIPANT_REMOVED,
            AuditEventType.PAYER_CHANGED,
        ]

    def test_set_payer(self, bill):
        result = operations.set_payer(bill, "binh")
        assert result.bill.payer.id == "binh"
        assert result.events[0].details == {"previous_payer_id": "dung"}


class TestCatalogOperations:
    """Tests for item operations."""

    def test_add_item_allocates(self, bill, amounts):
        result = operations.add_item(bill, name="Pizza", fee="40000", item_id="pizza")
        assert set(amounts(result.bill, "pizza").values()) == {Decimal("10000")}
        assert event_types(result) == [AuditEventType.ITEM_ADDED]

    def test_update_fee(self, bill, add_normal, amounts):
        bill = add_normal(bill, "pizza", 40000)
        result = operations.update_item_fee(bill, "pizza", 50000)
        assert result.bill.item("pizza").fee == Decimal("50000")
        assert amounts(result.bill, "pizza")["an"] == Decimal("12500")

    def test_update_name(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000)
        result = operations.update_item_name(bill, "pizza", "  Margherita ")
        assert result.bill.item("pizza").name == "Margherita"

    def test_remove_item(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000)
        result = operations.remove_item(bill, "pizza")
        assert result.bill.item("pizza") is None
        assert event_types(result) == [AuditEventType.ITEM_REMOVED]

    def test_adjustment_has_no_split_method(self, bill, discount_id):
        result = operations.update_item_split_method(bill, discount_id, SplitMethod.PERCENT)
        assert result.issues_with(IssueCode.ADJUSTMENT_ITEM)
        assert result.changed is False

    def test_adjustment_is_not_distributed(self, bill, discount_id):
        result = operations.distribute_item(bill, discount_id)
        assert result.issues_with(IssueCode.ADJUSTMENT_ITEM)
        assert result.events == []

    def test_update_settings_recomputes(self, bill, add_normal, amounts):
        bill = add_normal(bill, "hotpot", 49000)
        bill = exclude(bill, "hotpot", "dung")

        result = operations.update_settings(bill, rounding_rule=RoundingRule.UP)

        assert result.bill.settings.rounding_rule == RoundingRule.UP
        assert amounts(result.bill, "hotpot")["an"] == Decimal("16334")
        assert event_types(result) == [AuditEventType.SETTINGS_UPDATED]

    def test_update_settings_unknown_key(self, bill):
        with pytest.raises(StructuralError, match="Unknown settings"):
            operations.update_settings(bill, colour="blue")


class TestShareOperations:
    """Tests for share matrix operations."""

    def test_partial_participation_disabled(self, bill, add_normal):
        bill = operations.update_settings(bill, allow_partial_participation=False).bill
        bill = add_normal(bill, "pizza", 40000)

        result = operations.toggle_share_include(bill, "pizza", "an")

        assert result.issues_with(IssueCode.PARTIAL_PARTICIPATION_DISABLED)
        assert result.changed is False

    def test_including_adjustment_without_amount_warns(self, bill, carry_over_id):
        result = operations.toggle_share_include(bill, carry_over_id, "an")

        share = result.bill.item(carry_over_id).share_for("an")
        assert share.include is False
        assert share.amount == Decimal("0")
        assert result.issues_with(IssueCode.ADJUSTMENT_ITEM)
        assert result.changed is False
        assert result.events == []

    def test_adjustment_include_follows_amount(self, bill, carry_over_id):
        bill = operations.set_share_amount(bill, carry_over_id, "an", 5000).bill

        result = operations.toggle_share_include(bill, carry_over_id, "an", include=False)

        share = result.bill.item(carry_over_id).share_for("an")
        assert share.include is True
        assert share.amount == Decimal("5000")
        assert result.issues_with(IssueCode.ADJUSTMENT_ITEM)
        for item in result.bill.adjustment_items:
            for s in item.shares:
                assert s.include == (s.amount != 0)

    def test_lock_and_amount(self, bill, add_normal, amounts):
        bill = add_normal(bill, "pizza", 40000)
        result = operations.set_share_amount(bill, "pizza", "an", 16000)
        bill = result.bill
        assert amounts(bill, "pizza")["binh"] == Decimal("13333")
        assert result.issues_with(IssueCode.LOCKED_TOTAL_MISMATCH)
        assert not result.issues_with(IssueCode.INVARIANT_VIOLATION)

        result = operations.toggle_share_lock(bill, "pizza", "an")
        assert result.bill.item("pizza").share_for("an").locked is False
        assert set(amounts(result.bill, "pizza").values()) == {Decimal("10000")}

    def test_set_participant_paid_skips_excluded(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000)
        bill = operations.set_participant_paid(bill, "an").bill

        assert bill.item("pizza").share_for("an").paid is True
        for item in bill.adjustment_items:
            assert item.share_for("an").paid is False

    def test_percent_amount_rejected(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000, SplitMethod.PERCENT)
        with pytest.raises(StructuralError):
            operations.set_share_amount(bill, "pizza", "an", 1000)

    def test_share_events(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000, SplitMethod.PERCENT)
        result = operations.set_share_percent(bill, "pizza", "an", "25")

        event = result.events[0]
        assert event.event_type == AuditEventType.SHARE_UPDATED
        assert event.entity_id == "pizza:an"
        assert event.details["value"] == "25"


class TestInvariantCheck:
    """Every changing operation re-checks the totals."""

    def test_violation_reported_with_event(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000)
        bill.item("pizza").share_for("an").amount = Decimal("90000")

        result = operations.update_item_name(bill, "pizza", "Pizza party")

        assert result.has_errors
        assert result.issues_with(IssueCode.INVARIANT_VIOLATION)
        assert AuditEventType.INVARIANT_VIOLATED in event_types(result)

    def test_operations_keep_share_matrix(self, bill, add_normal):
        bill = add_normal(bill, "pizza", 40000)
        bill = operations.add_participant(bill, Participant(id="em", display_name="Em")).bill
        bill = operations.remove_participant(bill, "binh").bill

        expected = {p.id for p in bill.participants}
        for item in bill.items:
            assert {s.participant_id for s in item.shares} == expected
