"""
Tests for bill sessions.

Sessions run against in-memory storage; auto-save is disabled so writes
happen only on save() or close().
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from splitbill import operations
from splitbill.audit import AuditLogger
from splitbill.config import get_settings
from splitbill.engine.errors import StructuralError
from splitbill.models.audit import AuditEventType
from splitbill.orchestrator import BillSession, create_session
from splitbill.services.autosave import AutoSaver
from splitbill.services.storage import (
    InMemoryAuditStorage,
    InMemoryBillStorage,
    NotFoundError,
)


def make_session(bill, **kwargs):
    bill_storage = InMemoryBillStorage()
    audit_storage = InMemoryAuditStorage()
    audit_logger = AuditLogger(audit_storage)
    autosaver = AutoSaver(
        bill_storage,
        audit_logger=audit_logger,
        debounce_seconds=0,
        enabled=False,
    )
    session = BillSession(
        bill,
        bill_storage=bill_storage,
        audit_logger=audit_logger,
        autosaver=autosaver,
        distribute_delay_seconds=0,
        **kwargs,
    )
    return session, bill_storage, audit_storage


class TestBillSession:
    """Tests for BillSession."""

    def test_apply_keeps_result(self, bill):
        session, _, audit_storage = make_session(bill)

        async def scenario():
            return await session.apply(
                operations.add_item, name="Pizza", fee=40000, item_id="pizza"
            )

        result = asyncio.run(scenario())

        assert result.changed
        assert session.bill is result.bill
        assert session.dirty
        assert [e.event_type for e in audit_storage.events] == [AuditEventType.ITEM_ADDED]

    def test_rejected_operation_not_marked_dirty(self, bill, add_normal):
        session, _, audit_storage = make_session(add_normal(bill, "pizza", 40000))

        async def scenario():
            return await session.apply(
                operations.update_item_split_method,
                session.bill.items[-1].id,
                "PERCENT",
            )

        result = asyncio.run(scenario())

        assert result.changed is False
        assert not session.dirty
        assert audit_storage.events == []

    def test_structural_error_is_audited(self, bill):
        session, _, audit_storage = make_session(bill)
        before = session.bill

        async def scenario():
            await session.apply(operations.remove_item, "nothing")

        with pytest.raises(StructuralError):
            asyncio.run(scenario())

        assert session.bill is before
        event = audit_storage.events[0]
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.details == {"operation": "remove_item"}

    def test_save_and_load(self, bill, add_normal):
        session, bill_storage, audit_storage = make_session(add_normal(bill, "pizza", 40000))

        async def scenario():
            await session.apply(operations.toggle_share_include, "pizza", "an")
            assert await session.save()
            return await BillSession.load(bill.id, bill_storage, distribute_delay_seconds=0)

        loaded = asyncio.run(scenario())

        assert not session.dirty
        assert loaded.bill.item("pizza").share_for("an").include is False
        assert loaded.bill.last_saved is not None
        assert AuditEventType.BILL_SAVED in [e.event_type for e in audit_storage.events]

    def test_load_missing_bill(self):
        with pytest.raises(NotFoundError):
            asyncio.run(BillSession.load("nothing", InMemoryBillStorage()))

    def test_distribute_all(self, bill, add_normal):
        session, _, _ = make_session(add_normal(bill, "pizza", 40000))
        result = asyncio.run(session.distribute_all())
        assert result.changed is False

    def test_summary_transfers_and_validation(self, bill, add_normal):
        session, _, _ = make_session(add_normal(bill, "pizza", 40000))

        assert session.summary().grand_total == Decimal("40000")
        assert len(session.transfers()) == 3
        assert session.validate().is_valid

    def test_close_writes_pending(self, bill):
        storage = AsyncMock()
        autosaver = AutoSaver(storage, debounce_seconds=30, enabled=True)
        session = BillSession(bill, autosaver=autosaver, distribute_delay_seconds=0)

        async def scenario():
            await session.apply(operations.update_item_name, bill.items[0].id, "Old debt")
            return await session.close()

        assert asyncio.run(scenario()) is True
        storage.save_bill.assert_awaited_once()
        assert storage.save_bill.await_args.args[0].items[0].name == "Old debt"

    def test_session_without_storage(self, bill):
        session = BillSession(bill, distribute_delay_seconds=0)
        assert session.autosaver is None
        assert asyncio.run(session.save()) is False
        assert asyncio.run(session.close()) is True


class TestCreateSession:
    """Tests for the session factory."""

    def test_in_memory(self, bill):
        session, sheets_client = create_session(bill, use_storage=False)
        assert sheets_client is None
        assert session.bill is bill
        assert session.autosaver is not None

    def test_falls_back_when_sheets_not_configured(self, bill):
        session, sheets_client = create_session(bill, use_storage=True)
        assert sheets_client is None
        assert session.autosaver is not None

    def test_configures_logging_from_settings(self, bill, monkeypatch):
        monkeypatch.setenv("DEBUG_MODE", "true")
        get_settings.cache_clear()

        with patch("splitbill.orchestrator.configure_logging") as configure:
            create_session(bill, use_storage=False)

        configure.assert_called_once_with(debug=True)
