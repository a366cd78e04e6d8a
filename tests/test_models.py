"""
Tests for Split Bill models

Test strategy:
1. Unit tests for individual components (models, engine, validators)
2. Integration tests for sessions (with in-memory or mocked storage)
3. No real API calls in tests (use mocks)
"""

import json
from decimal import Decimal

import pytest

from splitbill import operations
from splitbill.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from splitbill.models.bill import (
    Bill,
    BillSettings,
    BillStatus,
    Item,
    ItemShare,
    ItemType,
    Participant,
    RoundingRule,
    SplitMethod,
)
from splitbill.models.issues import (
    BillIssue,
    IssueCategory,
    IssueCode,
    ValidationResult,
)


def sample_document() -> dict:
    return {
        "id": "bill-1",
        "title": "Dinner",
        "status": "ACTIVE",
        "settings": {
            "currency": "vnd",
            "roundingRule": "NEAREST",
            "autoValidatePercentages": None,
        },
        "participants": [
            {"id": "p1", "displayName": "Phuong", "order": 0},
            {"id": "p2", "displayName": "Quan", "isPayer": True, "order": 1},
        ],
        "items": [
            {
                "id": "i1",
                "name": "Pho",
                "fee": 50000,
                "type": "NORMAL",
                "splitMethod": "EQUAL",
                "shares": [
                    {"participantId": "p1", "include": True, "amount": 25000},
                    {"participantId": "p2", "include": False, "amount": 25000},
                ],
            },
        ],
    }


class TestBillModels:
    """Tests for the bill aggregate and its parts."""

    def test_participant_strips_whitespace(self):
        """Test that whitespace is stripped from display names."""
        participant = Participant(id="p1", display_name="  Phuong  ")
        assert participant.display_name == "Phuong"

    def test_participant_accepts_camel_case(self):
        """Test that wire names populate snake_case fields."""
        participant = Participant.model_validate({
            "id": "p1",
            "displayName": "Phuong",
            "isPayer": True,
            "bankCode": "VCB",
        })
        assert participant.is_payer is True
        assert participant.bank_code == "VCB"

    def test_excluded_share_has_no_amount(self):
        """Test that an excluded share never carries an amount."""
        share = ItemShare(participant_id="p1", include=False, amount=Decimal("1000"))
        assert share.amount == Decimal("0")

    def test_adjustment_share_counts_only_with_amount(self):
        """Test that adjustment shares are included exactly when non-zero."""
        item = Item.model_validate({
            "id": "debt",
            "type": "CARRY_OVER",
            "shares": [
                {"participantId": "p1", "include": True, "amount": 0},
                {"participantId": "p2", "include": False, "amount": 0},
                {"participantId": "p3", "include": True, "amount": 7000},
            ],
        })
        assert [s.include for s in item.shares] == [False, False, True]

    def test_missing_amount_and_fee_are_zero(self):
        """Test that null amounts and fees load as zero."""
        share = ItemShare(participant_id="p1", amount=None)
        item = Item(id="i1", fee=None)
        assert share.amount == Decimal("0")
        assert item.fee == Decimal("0")

    def test_item_type_alias(self):
        """Test that the item type is stored under 'type' on the wire."""
        item = Item.model_validate({"id": "i1", "type": "SPECIAL"})
        assert item.item_type == ItemType.SPECIAL
        assert item.is_adjustment
        assert item.model_dump(by_alias=True)["type"] == ItemType.SPECIAL

    def test_settings_currency_unit(self):
        """Test the rounding quantum follows the currency."""
        assert BillSettings(currency="vnd").currency_unit == Decimal("1")
        assert BillSettings(currency="USD").currency_unit == Decimal("0.01")
        assert BillSettings(currency="XYZ").currency_unit == Decimal("0.01")

    def test_settings_null_toggles_are_off(self):
        """Test that missing policy toggles load as disabled."""
        settings = BillSettings.model_validate({"requirePaymentConfirmation": None})
        assert settings.require_payment_confirmation is False

    def test_settings_from_config_defaults(self):
        """Test new-bill settings come from configuration."""
        settings = BillSettings.from_config()
        assert settings.default_split_method == SplitMethod.EQUAL
        assert settings.rounding_rule == RoundingRule.NEAREST
        assert settings.currency == "VND"

    def test_bill_lookup_helpers(self, bill):
        """Test payer and item lookups on a fresh bill."""
        assert bill.payer.id == "dung"
        assert bill.participant("an").display_name == "An"
        assert bill.participant("nobody") is None
        assert bill.normal_items == []
        assert [i.item_type for i in bill.adjustment_items] == [
            ItemType.CARRY_OVER,
            ItemType.SPECIAL,
        ]


class TestBillDocument:
    """Tests for loading and saving the bill document."""

    def test_load_document(self):
        """Test a stored document loads into a Bill."""
        bill = Bill.from_document(sample_document())
        assert bill.status == BillStatus.ACTIVE
        assert bill.settings.currency == "VND"
        assert bill.settings.auto_validate_percentages is False
        assert bill.payer.id == "p2"
        assert bill.item("i1").fee == Decimal("50000")

    def test_load_normalizes_excluded_amounts(self):
        """Test an excluded share saved with an amount loads as zero."""
        bill = Bill.from_document(sample_document())
        share = bill.item("i1").share_for("p2")
        assert share.include is False
        assert share.amount == Decimal("0")

    def test_load_from_json_text(self):
        """Test the document also loads from embedded JSON text."""
        bill = Bill.from_document(json.dumps(sample_document()))
        assert bill.id == "bill-1"

    def test_round_trip(self, bill, add_normal):
        """Test a bill survives to_document and from_document unchanged."""
        bill = add_normal(bill, "pizza", 40000)
        restored = Bill.from_document(bill.to_document())
        assert restored == bill

    def test_document_uses_camel_case(self, bill, add_normal):
        """Test the document keys match the stored shape."""
        bill = add_normal(bill, "pizza", 40000)
        document = bill.to_document()

        payer = document["participants"][-1]
        assert payer["isPayer"] is True
        assert payer["displayName"] == "Dung"
        assert payer["accountNumber"] == "0123456789"

        item = document["items"][0]
        assert item["type"] == "NORMAL"
        assert item["splitMethod"] == "EQUAL"
        share = item["shares"][0]
        assert set(share) >= {"participantId", "rawInput", "isManualEntry", "amount"}
        assert Decimal(share["amount"]) == Decimal("10000")

    def test_shares_must_match_participants(self):
        """Test a document with a missing share is rejected."""
        document = sample_document()
        document["items"][0]["shares"].pop()
        with pytest.raises(ValueError, match="do not match the participants"):
            Bill.from_document(document)

    def test_duplicate_shares_rejected(self):
        """Test a document with two shares for one participant is rejected."""
        document = sample_document()
        document["items"][0]["shares"][1]["participantId"] = "p1"
        with pytest.raises(ValueError):
            Bill.from_document(document)

    def test_single_payer(self):
        """Test a document with two payers is rejected."""
        document = sample_document()
        document["participants"][0]["isPayer"] = True
        with pytest.raises(ValueError, match="more than one payer"):
            Bill.from_document(document)

    def test_duplicate_participants_rejected(self):
        """Test participant ids must be unique."""
        document = sample_document()
        document["participants"][1]["id"] = "p1"
        with pytest.raises(ValueError):
            Bill.from_document(document)


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.ITEM_ADDED,
            bill_id="bill-1",
            description="Item added: Pizza",
        )
        assert event.event_type == AuditEventType.ITEM_ADDED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.share_updated("bill-1", "pizza", "an", "include", False)
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "share_updated"
        assert log_dict["bill_id"] == "bill-1"
        assert log_dict["entity_id"] == "pizza:an"
        assert log_dict["details"]["value"] == "False"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.item_distributed("bill-1", "pizza", ["nobody included"])
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == "item_distributed"
        assert row[3] == "warning"
        assert row[4] == "bill-1"
        assert json.loads(row[9]) == {"warnings": ["nobody included"]}

    def test_builder_payer_removed_is_warning(self):
        """Test removing the payer without replacement is flagged."""
        event = AuditEventBuilder.participant_removed("bill-1", "dung", was_payer=True)
        assert event.severity == AuditSeverity.WARNING
        assert "without replacement" in event.description

    def test_builder_save_failed(self):
        """Test save failures are errors, not user actions."""
        event = AuditEventBuilder.save_failed("bill-1", "quota exceeded")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "quota exceeded"
        assert event.is_user_action is False

    def test_builder_status_advanced(self):
        """Test status change events carry both statuses."""
        event = AuditEventBuilder.status_advanced("bill-1", "DRAFT", "ACTIVE")
        assert event.details == {"from": "DRAFT", "to": "ACTIVE"}


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            bill_id="bill-1",
            is_valid=False,
            issues=[
                BillIssue(
                    category=IssueCategory.VALIDATION,
                    code=IssueCode.PAYER_MISSING,
                    message="No payer is assigned",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test result with only warnings."""
        result = ValidationResult(
            bill_id="bill-1",
            is_valid=True,
            issues=[
                BillIssue(
                    category=IssueCategory.VALIDATION,
                    code=IssueCode.PAYMENT_PROFILE_INCOMPLETE,
                    message="Payer QR code missing",
                ),
            ],
            warnings=["Payer QR code missing"],
        )
        assert not result.has_errors
        assert result.error_count == 0

    def test_issue_severity_is_checked(self):
        """Test unknown severities are rejected."""
        with pytest.raises(ValueError):
            BillIssue(
                category=IssueCategory.ALLOCATION,
                code=IssueCode.PERCENT_MISMATCH,
                message="x",
                severity="fatal",
            )


class TestOperationResult:
    """Tests for the operation result wrapper."""

    def test_warnings_and_codes(self, bill, add_normal):
        """Test issue helpers on an operation result."""
        bill = add_normal(bill, "pizza", 40000, SplitMethod.PERCENT)
        result = operations.distribute_item(bill, "pizza")
        assert result.issues_with(IssueCode.PERCENT_MISMATCH)
        assert result.warnings
        assert not result.has_errors
