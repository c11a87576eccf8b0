"""Tests for audit trail queries and reconciliation."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from inventory.adjustment.workflow import approve_adjustment, create_adjustment
from inventory.audit.queries import list_audit_logs, reconcile
from inventory.exceptions import NotFound
from inventory.stock.ledger import cancel_reservation, fulfill_order, process_return, receive_stock, reserve


@pytest.fixture
def busy_product(register):
    register(physical_stock=100)
    reserve("prod-001", "ord-001", 30)
    fulfill_order("prod-001", "ord-001", 30)
    reserve("prod-001", "ord-002", 10)
    cancel_reservation("prod-001", "ord-002")
    process_return("prod-001", "ord-001", 5, reason="Damaged box")
    receive_stock("prod-001", 40, reference="PO-2001")
    adjustment = create_adjustment("prod-001", "decrease", 3, "lost", "clerk-001")
    approve_adjustment(adjustment.id, "approved", "manager-001")


class TestListAuditLogs:
    def test_every_mutation_is_recorded(self, busy_product):
        page = list_audit_logs(product_id="prod-001")
        assert page.total == 7
        operations = {entry.operation_type for entry in page.items}
        assert operations == {
            "order_reservation",
            "order_fulfillment",
            "order_cancellation",
            "return_processing",
            "reorder_received",
            "manual_adjustment",
        }

    def test_newest_first(self, busy_product):
        items = list_audit_logs(product_id="prod-001").items
        assert items[0].operation_type == "manual_adjustment"
        created = [entry.created_at for entry in items]
        assert created == sorted(created, reverse=True)

    def test_filter_by_order(self, busy_product):
        page = list_audit_logs(order_id="ord-001")
        assert page.total == 3

    def test_filter_by_operation_type(self, busy_product):
        assert list_audit_logs(operation_type="order_reservation").total == 2

    def test_filter_by_date_range(self, busy_product):
        now = datetime.now(UTC)
        assert list_audit_logs(start=now - timedelta(hours=1), end=now + timedelta(hours=1)).total == 7
        assert list_audit_logs(start=now + timedelta(hours=1)).total == 0
        assert list_audit_logs(end=now - timedelta(hours=1)).total == 0

    def test_inverted_date_range(self):
        now = datetime.now(UTC)
        with pytest.raises(ValidationError) as exc_info:
            list_audit_logs(start=now, end=now - timedelta(days=1))
        assert "start" in exc_info.value.messages

    def test_unknown_operation_type(self):
        with pytest.raises(ValidationError):
            list_audit_logs(operation_type="shrinkage")

    def test_pagination(self, busy_product):
        first = list_audit_logs(product_id="prod-001", limit=5)
        second = list_audit_logs(product_id="prod-001", limit=5, offset=5)
        assert len(first.items) == 5
        assert len(second.items) == 2
        assert {entry.id for entry in first.items}.isdisjoint(entry.id for entry in second.items)

    def test_limit_must_be_positive(self):
        with pytest.raises(ValidationError) as exc_info:
            list_audit_logs(limit=0)
        assert "limit" in exc_info.value.messages

    def test_versions_chain(self, busy_product):
        items = sorted(list_audit_logs(product_id="prod-001").items, key=lambda entry: entry.product_version_before)
        for previous, current in zip(items, items[1:], strict=False):
            assert current.product_version_before == previous.product_version_after


class TestReconcile:
    def test_audit_trail_explains_current_stock(self, busy_product):
        result = reconcile("prod-001")
        assert result.initial_physical_stock == 100
        assert result.current_physical_stock == 112
        assert result.audited_change == 12
        assert result.balanced

    def test_fresh_product_balances(self, register):
        register(physical_stock=25)
        result = reconcile("prod-001")
        assert result.audited_change == 0
        assert result.balanced

    def test_unknown_product(self):
        with pytest.raises(NotFound):
            reconcile("prod-missing")
