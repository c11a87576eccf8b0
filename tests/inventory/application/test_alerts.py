"""Tests for reorder alerts raised by ledger mutations and managed by operators."""

import pytest
from protean.exceptions import ValidationError

from inventory.alerts.management import get_alert, list_alerts, open_alerts_for, update_alert_status
from inventory.alerts.thresholds import resolve_thresholds, set_threshold_override
from inventory.exceptions import AlertStateError, NotFound
from inventory.stock.ledger import (
    cancel_reservation,
    discontinue,
    fulfill_order,
    get_product,
    receive_stock,
    reserve,
)


def _alerts(product_id="prod-001", **filters):
    return list_alerts(product_id=product_id, **filters).items


class TestLowStockAlerts:
    def test_reservation_below_reorder_point_raises_alert(self, register):
        register(physical_stock=100, reorder_point=20, max_stock_level=100)

        reserve("prod-001", "ord-001", 85)

        alerts = _alerts()
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == "low_stock"
        assert alert.alert_status == "active"
        assert alert.current_stock == 15
        assert alert.reorder_point == 20
        assert alert.suggested_reorder_quantity == 50
        assert get_product("prod-001").stock_status == "low_stock"

    def test_further_drops_refresh_the_open_alert(self, register):
        register(physical_stock=100, reorder_point=20)
        reserve("prod-001", "ord-001", 85)
        reserve("prod-001", "ord-002", 5)

        alerts = _alerts(alert_type="low_stock")
        assert len(alerts) == 1
        assert alerts[0].current_stock == 10

    def test_restock_resolves_alert(self, register):
        register(physical_stock=100, reorder_point=20, max_stock_level=200)
        reserve("prod-001", "ord-001", 85)

        receive_stock("prod-001", 60)

        alert = _alerts()[0]
        assert alert.alert_status == "resolved"
        assert alert.resolved_at is not None
        assert open_alerts_for("prod-001") == []
        assert get_product("prod-001").stock_status == "in_stock"

    def test_cancellation_resolves_alert(self, register):
        register(physical_stock=100, reorder_point=20)
        reserve("prod-001", "ord-001", 85)
        cancel_reservation("prod-001", "ord-001")
        assert _alerts(status="active") == []

    def test_new_crossing_after_resolution_raises_new_alert(self, register):
        register(physical_stock=100, reorder_point=20)
        reserve("prod-001", "ord-001", 85)
        cancel_reservation("prod-001", "ord-001")
        reserve("prod-001", "ord-002", 90)

        assert len(_alerts(alert_type="low_stock")) == 2
        assert len(open_alerts_for("prod-001")) == 1

    def test_dismissed_alert_is_not_reopened_while_condition_holds(self, register):
        register(physical_stock=100, reorder_point=20)
        reserve("prod-001", "ord-001", 85)
        alert = _alerts()[0]
        update_alert_status(alert.id, "dismissed", notes="Supplier already contacted")

        reserve("prod-001", "ord-002", 5)

        assert len(_alerts()) == 1
        assert get_alert(alert.id).alert_status == "dismissed"

    def test_discontinuing_resolves_shortage_alerts(self, register):
        register(physical_stock=100, reorder_point=20)
        reserve("prod-001", "ord-001", 85)
        discontinue("prod-001")

        assert open_alerts_for("prod-001") == []
        fulfill_order("prod-001", "ord-001", 85)
        assert open_alerts_for("prod-001") == []
        assert get_product("prod-001").stock_status == "discontinued"


class TestOutOfStockAlerts:
    def test_selling_out_raises_both_alerts(self, register):
        register(physical_stock=10)
        reserve("prod-001", "ord-001", 10)

        types = {alert.alert_type for alert in _alerts(status="active")}
        assert types == {"low_stock", "out_of_stock"}
        assert get_product("prod-001").stock_status == "out_of_stock"

    def test_partial_restock_resolves_only_out_of_stock(self, register):
        register(physical_stock=10)
        reserve("prod-001", "ord-001", 10)
        receive_stock("prod-001", 5)

        open_types = {alert.alert_type for alert in open_alerts_for("prod-001")}
        assert open_types == {"low_stock"}


class TestOverstockAlerts:
    def test_receiving_past_threshold_raises_overstock(self, register):
        register(physical_stock=90, max_stock_level=100)
        receive_stock("prod-001", 20)

        alert = _alerts(alert_type="overstock")[0]
        assert alert.current_stock == 110
        assert alert.suggested_reorder_quantity == 0

    def test_shipping_resolves_overstock(self, register):
        register(physical_stock=90, max_stock_level=100)
        receive_stock("prod-001", 20)
        reserve("prod-001", "ord-001", 30)
        fulfill_order("prod-001", "ord-001", 30)

        assert _alerts(alert_type="overstock")[0].alert_status == "resolved"


class TestThresholdOverrides:
    def test_product_override_wins(self, register):
        register(physical_stock=100, reorder_point=5)
        set_threshold_override("product", "prod-001", low_stock_percent=50)

        reserve("prod-001", "ord-001", 55)

        assert [alert.alert_type for alert in _alerts()] == ["low_stock"]
        assert resolve_thresholds(get_product("prod-001")).source == "product"

    def test_category_override_applies_to_its_products(self, register):
        register("prod-001", physical_stock=100, reorder_point=5, category_id="cat-001")
        register("prod-002", physical_stock=100, reorder_point=5)
        set_threshold_override("category", "cat-001", low_stock_percent=50)

        reserve("prod-001", "ord-001", 55)
        reserve("prod-002", "ord-001", 55)

        assert len(_alerts("prod-001")) == 1
        assert _alerts("prod-002") == []

    def test_override_that_crosses_the_line_raises_the_alert(self, register):
        register(physical_stock=100, reorder_point=5)
        reserve("prod-001", "ord-001", 60)
        assert _alerts() == []

        set_threshold_override("product", "prod-001", low_stock_percent=50)

        alerts = _alerts(alert_type="low_stock")
        assert len(alerts) == 1
        assert alerts[0].alert_status == "active"
        assert alerts[0].current_stock == 40
        assert get_product("prod-001").stock_status == "low_stock"

        reserve("prod-001", "ord-002", 1)

        alerts = _alerts(alert_type="low_stock")
        assert len(alerts) == 1
        assert alerts[0].current_stock == 39

    def test_category_override_reevaluates_its_products(self, register):
        register("prod-001", physical_stock=100, reorder_point=5, category_id="cat-001")
        register("prod-002", physical_stock=100, reorder_point=5, category_id="cat-001")
        register("prod-003", physical_stock=100, reorder_point=5)
        reserve("prod-001", "ord-001", 60)
        reserve("prod-003", "ord-001", 60)

        set_threshold_override("category", "cat-001", low_stock_percent=50)

        assert [alert.alert_type for alert in _alerts("prod-001")] == ["low_stock"]
        assert _alerts("prod-002") == []
        assert _alerts("prod-003") == []
        assert get_product("prod-002").version == 1

    def test_relaxing_an_override_resolves_the_alert(self, register):
        register(physical_stock=100, reorder_point=5)
        reserve("prod-001", "ord-001", 60)
        set_threshold_override("product", "prod-001", low_stock_percent=50)

        set_threshold_override("product", "prod-001", low_stock_percent=20)

        assert open_alerts_for("prod-001") == []
        assert _alerts(alert_type="low_stock")[0].alert_status == "resolved"
        assert get_product("prod-001").stock_status == "in_stock"

    def test_override_for_unregistered_product_is_kept_for_later(self, register):
        set_threshold_override("product", "prod-001", low_stock_percent=50)
        register(physical_stock=40, reorder_point=5)

        assert [alert.alert_type for alert in _alerts()] == ["low_stock"]

    def test_overrides_merge_field_by_field(self, register):
        product = register(physical_stock=100, category_id="cat-001")
        set_threshold_override("category", "cat-001", low_stock_percent=35, overstock_percent=150)
        set_threshold_override("product", "prod-001", overstock_percent=120)

        thresholds = resolve_thresholds(product)

        assert thresholds.low_stock_percent == 35
        assert thresholds.overstock_percent == 120

    def test_disabled_override_is_ignored(self, register):
        product = register(physical_stock=100)
        set_threshold_override("product", "prod-001", low_stock_percent=50, enabled=False)
        thresholds = resolve_thresholds(product)
        assert thresholds.low_stock_percent == 20
        assert thresholds.source == "global"

    def test_saving_an_override_again_replaces_it(self, register):
        product = register(physical_stock=100)
        set_threshold_override("product", "prod-001", low_stock_percent=50)
        override = set_threshold_override("product", "prod-001", low_stock_percent=30)
        assert override.version == 2
        assert resolve_thresholds(product).low_stock_percent == 30

    def test_invalid_scope(self):
        with pytest.raises(ValidationError) as exc_info:
            set_threshold_override("warehouse", "wh-001", low_stock_percent=10)
        assert "scope" in exc_info.value.messages


class TestAlertManagement:
    @pytest.fixture
    def alert(self, register):
        register(physical_stock=100, reorder_point=20, max_stock_level=200)
        reserve("prod-001", "ord-001", 85)
        return _alerts()[0]

    def test_acknowledge(self, alert):
        updated = update_alert_status(alert.id, "acknowledged", actor="ops-001")
        assert updated.alert_status == "acknowledged"
        stored = get_alert(alert.id)
        assert stored.acknowledged_by == "ops-001"
        assert stored.version == alert.version + 1

    def test_acknowledged_alert_still_resolves_automatically(self, alert):
        update_alert_status(alert.id, "acknowledged", actor="ops-001")
        receive_stock("prod-001", 60)
        assert get_alert(alert.id).alert_status == "resolved"

    def test_resolved_alert_cannot_change(self, alert):
        update_alert_status(alert.id, "resolved", notes="Reordered")
        with pytest.raises(AlertStateError):
            update_alert_status(alert.id, "acknowledged")
        assert get_alert(alert.id).alert_status == "resolved"

    def test_unknown_status(self, alert):
        with pytest.raises(ValidationError):
            update_alert_status(alert.id, "snoozed")

    def test_unknown_alert(self):
        with pytest.raises(NotFound):
            update_alert_status("alert-404", "acknowledged")

    def test_list_filters(self, alert):
        update_alert_status(alert.id, "acknowledged")
        assert list_alerts(status="acknowledged").total == 1
        assert list_alerts(status="active").total == 0
        assert list_alerts(alert_type="overstock").total == 0
