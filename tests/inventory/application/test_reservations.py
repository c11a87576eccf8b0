"""Tests for the reserve / fulfil / cancel flow through the ledger."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from inventory.audit.queries import list_audit_logs
from inventory.exceptions import (
    InsufficientStock,
    InvalidReservationState,
    NotFound,
    ProductUnavailable,
    ReservationNotFound,
)
from inventory.settings import LedgerSettings, set_settings
from inventory.stock.ledger import (
    cancel_reservation,
    discontinue,
    fulfill_order,
    get_product,
    get_reservation,
    list_reservations,
    place_on_hold,
    release_hold,
    reserve,
)
from inventory.stock.reservation import ReservationStatus


def _levels(product_id="prod-001"):
    product = get_product(product_id)
    return product.physical_stock, product.reserved_stock, product.available_stock


class TestReserve:
    def test_reserve_moves_stock_and_records_reservation(self, register):
        register(physical_stock=100)

        reservation = reserve("prod-001", "ord-001", 30)

        assert _levels() == (100, 30, 70)
        stored = get_reservation(reservation.id)
        assert stored.status == ReservationStatus.ACTIVE.value
        assert stored.quantity == 30
        assert stored.order_id == "ord-001"

    def test_reserve_bumps_product_version(self, register):
        register(physical_stock=100)
        assert get_product("prod-001").version == 1

        reserve("prod-001", "ord-001", 5)

        assert get_product("prod-001").version == 2

    def test_reserve_writes_audit_entry(self, register):
        register(physical_stock=100)
        reservation = reserve("prod-001", "ord-001", 30)

        page = list_audit_logs(product_id="prod-001")
        assert page.total == 1
        entry = page.items[0]
        assert entry.operation_type == "order_reservation"
        assert entry.quantity_affected == 30
        assert entry.reserved_stock_change == 30
        assert entry.reservation_id == str(reservation.id)

    def test_default_expiry_comes_from_settings(self, register):
        register()
        before = datetime.now(UTC)
        reservation = reserve("prod-001", "ord-001", 1)
        expires_at = reservation.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        assert before + timedelta(minutes=14) < expires_at <= datetime.now(UTC) + timedelta(minutes=15)

    def test_zero_ttl_disables_default_expiry(self, register):
        set_settings(LedgerSettings(reservation_ttl_minutes=0))
        register()
        assert reserve("prod-001", "ord-001", 1).expires_at is None

    def test_insufficient_stock_leaves_ledger_untouched(self, register):
        register(physical_stock=10)
        reserve("prod-001", "ord-001", 8)

        with pytest.raises(InsufficientStock) as exc_info:
            reserve("prod-001", "ord-002", 3)

        assert exc_info.value.available == 2
        assert exc_info.value.requested == 3
        assert _levels() == (10, 8, 2)
        assert list_reservations(order_id="ord-002").total == 0
        assert list_audit_logs(product_id="prod-001").total == 1

    @pytest.mark.parametrize("quantity", [0, -1, 1.5])
    def test_invalid_quantity(self, register, quantity):
        register()
        with pytest.raises(ValidationError):
            reserve("prod-001", "ord-001", quantity)
        assert _levels() == (100, 0, 100)

    def test_order_id_is_required(self, register):
        register()
        with pytest.raises(ValidationError) as exc_info:
            reserve("prod-001", "", 1)
        assert "order_id" in exc_info.value.messages

    def test_unknown_product(self):
        with pytest.raises(NotFound):
            reserve("prod-missing", "ord-001", 1)

    def test_one_active_reservation_per_order_and_product(self, register):
        register()
        reserve("prod-001", "ord-001", 5)
        with pytest.raises(ValidationError) as exc_info:
            reserve("prod-001", "ord-001", 5)
        assert "order_id" in exc_info.value.messages
        assert _levels() == (100, 5, 95)

    def test_order_may_reserve_again_after_cancelling(self, register):
        register()
        reserve("prod-001", "ord-001", 5)
        cancel_reservation("prod-001", "ord-001")
        reserve("prod-001", "ord-001", 7)
        assert _levels() == (100, 7, 93)

    def test_discontinued_product_cannot_be_reserved(self, register):
        register()
        discontinue("prod-001")
        with pytest.raises(ProductUnavailable):
            reserve("prod-001", "ord-001", 1)

    def test_hold_blocks_reservations_until_released(self, register):
        register()
        place_on_hold("prod-001")
        with pytest.raises(ProductUnavailable):
            reserve("prod-001", "ord-001", 1)

        release_hold("prod-001")
        reserve("prod-001", "ord-001", 1)
        assert get_product("prod-001").stock_status == "in_stock"


class TestFulfil:
    def test_fulfil_ships_reserved_units(self, register):
        register(physical_stock=100)
        reserve("prod-001", "ord-001", 30)

        reservation = fulfill_order("prod-001", "ord-001", 30)

        assert _levels() == (70, 0, 70)
        assert reservation.status == ReservationStatus.FULFILLED.value
        assert get_reservation(reservation.id).status == ReservationStatus.FULFILLED.value

    def test_partial_fulfilment(self, register):
        register(physical_stock=100)
        reserve("prod-001", "ord-001", 30)

        fulfill_order("prod-001", "ord-001", 10)
        assert _levels() == (90, 20, 70)
        reservation = fulfill_order("prod-001", "ord-001", 20)

        assert _levels() == (70, 0, 70)
        assert reservation.status == ReservationStatus.FULFILLED.value
        assert reservation.fulfilled_quantity == 30

    def test_cannot_ship_more_than_reserved(self, register):
        register(physical_stock=100)
        reserve("prod-001", "ord-001", 10)
        with pytest.raises(InvalidReservationState):
            fulfill_order("prod-001", "ord-001", 11)
        assert _levels() == (100, 10, 90)

    def test_order_without_reservation(self, register):
        register()
        with pytest.raises(ReservationNotFound):
            fulfill_order("prod-001", "ord-404", 1)

    def test_fulfilment_writes_audit_entry(self, register):
        register(physical_stock=100)
        reserve("prod-001", "ord-001", 30)
        fulfill_order("prod-001", "ord-001", 30)

        page = list_audit_logs(product_id="prod-001", operation_type="order_fulfillment")
        assert page.total == 1
        entry = page.items[0]
        assert entry.physical_stock_change == -30
        assert entry.reserved_stock_change == -30
        assert entry.available_stock_change == 0


class TestCancel:
    def test_cancel_releases_reserved_units(self, register):
        register(physical_stock=100)
        reserve("prod-001", "ord-001", 30)

        reservation = cancel_reservation("prod-001", "ord-001", reason="Customer cancelled")

        assert _levels() == (100, 0, 100)
        assert reservation.status == ReservationStatus.CANCELLED.value
        assert reservation.close_reason == "Customer cancelled"

    def test_cancel_after_partial_fulfilment_releases_the_rest(self, register):
        register(physical_stock=100)
        reserve("prod-001", "ord-001", 30)
        fulfill_order("prod-001", "ord-001", 10)

        cancel_reservation("prod-001", "ord-001")

        assert _levels() == (90, 0, 90)
        entry = list_audit_logs(product_id="prod-001", operation_type="order_cancellation").items[0]
        assert entry.quantity_affected == 20

    def test_cancel_twice(self, register):
        register()
        reserve("prod-001", "ord-001", 5)
        cancel_reservation("prod-001", "ord-001")
        with pytest.raises(InvalidReservationState):
            cancel_reservation("prod-001", "ord-001")
        assert _levels() == (100, 0, 100)

    def test_cannot_cancel_fulfilled_reservation(self, register):
        register()
        reserve("prod-001", "ord-001", 5)
        fulfill_order("prod-001", "ord-001", 5)
        with pytest.raises(InvalidReservationState):
            cancel_reservation("prod-001", "ord-001")

    def test_cancel_unknown_order(self, register):
        register()
        with pytest.raises(ReservationNotFound):
            cancel_reservation("prod-001", "ord-404")


class TestRoundTrip:
    def test_reserve_then_cancel_restores_levels(self, register):
        register(physical_stock=42)
        reserve("prod-001", "ord-001", 17)
        cancel_reservation("prod-001", "ord-001")
        assert _levels() == (42, 0, 42)

    def test_many_orders_keep_levels_consistent(self, register):
        register(physical_stock=50)
        for index in range(5):
            reserve("prod-001", f"ord-{index:03d}", 4)
        fulfill_order("prod-001", "ord-000", 4)
        cancel_reservation("prod-001", "ord-001")
        fulfill_order("prod-001", "ord-002", 2)

        physical, reserved, available = _levels()
        assert (physical, reserved) == (44, 10)
        assert available == physical - reserved
        assert list_reservations(product_id="prod-001", status="active").total == 3


class TestListReservations:
    def test_filters_and_pagination(self, register):
        register("prod-001")
        register("prod-002")
        reserve("prod-001", "ord-001", 1)
        reserve("prod-001", "ord-002", 1)
        reserve("prod-002", "ord-001", 1)

        assert list_reservations(product_id="prod-001").total == 2
        assert list_reservations(order_id="ord-001").total == 2

        page = list_reservations(product_id="prod-001", limit=1, offset=1)
        assert page.total == 2
        assert len(page.items) == 1
        assert page.limit == 1
        assert page.offset == 1

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            list_reservations(status="pending")
        assert "status" in exc_info.value.messages

    def test_negative_offset_is_rejected(self):
        with pytest.raises(ValidationError):
            list_reservations(offset=-1)
