"""Reorder alert engine.

Runs inside every ledger mutation, after the stock change has been applied
in memory and before anything is committed. It refreshes the product's
derived ``stock_status`` and works out which alerts to open, refresh or
resolve. The returned changes are committed in the same unit of work as the
mutation, so an alert never exists without the stock change that caused it.

For each alert type:

    condition holds, alert open            -> refresh figures
    condition holds, no alert, was clear   -> open a new alert
    condition clear, alert open            -> resolve it

A condition that already held before the mutation does not reopen an alert
an operator resolved or dismissed; a new alert needs a fresh crossing.
A changed threshold override counts as a crossing: the state before is
judged against the old thresholds and the state after against the new ones.
"""

from typing import TYPE_CHECKING

import structlog

from inventory.alerts.alert import AlertType, ReorderAlert
from inventory.stock.stock import StockSnapshot, StockStatus, percent_of

if TYPE_CHECKING:
    from inventory.alerts.thresholds import Thresholds

logger = structlog.get_logger(__name__)


def conditions(snapshot: StockSnapshot, thresholds: "Thresholds") -> dict[str, bool]:
    """Which alert conditions hold for a snapshot."""
    retired = snapshot.stock_status == StockStatus.DISCONTINUED.value
    available = snapshot.available_stock
    low = available <= snapshot.reorder_point or (
        percent_of(available, snapshot.max_stock_level) <= thresholds.low_stock_percent
    )
    return {
        AlertType.LOW_STOCK.value: not retired and low,
        AlertType.OUT_OF_STOCK.value: not retired and available == 0,
        AlertType.OVERSTOCK.value: (
            percent_of(snapshot.physical_stock, snapshot.max_stock_level) > thresholds.overstock_percent
        ),
    }


def _figures(product, alert_type):
    if alert_type == AlertType.OVERSTOCK.value:
        return product.physical_stock, product.reorder_point, 0
    return product.available_stock, product.reorder_point, product.reorder_quantity


def evaluate(
    product,
    before: StockSnapshot | None,
    thresholds: "Thresholds",
    open_alerts,
    previous_thresholds: "Thresholds | None" = None,
) -> list:
    """Update ``product.stock_status`` and return the alert changes to commit.

    ``before`` is the product as it was read (None for a new product) and
    ``open_alerts`` are the product's current open alerts. ``before`` is judged
    against ``previous_thresholds`` when the thresholds themselves are what
    changed, and against ``thresholds`` otherwise. Changes come back as
    ``(alert, expected_version)`` pairs for the persistence boundary.
    """
    product.apply_status(product.derived_status(thresholds.low_stock_percent))

    now = conditions(product.snapshot(), thresholds)
    if before is None:
        previously = dict.fromkeys(now, False)
    else:
        previously = conditions(before, previous_thresholds or thresholds)
    by_type = {alert.alert_type: alert for alert in open_alerts}

    changes = []
    for alert_type, holds in now.items():
        alert = by_type.get(alert_type)
        if holds and alert is not None:
            if alert.refresh(*_figures(product, alert_type)):
                changes.append((alert, alert.version))
        elif holds and not previously[alert_type]:
            alert = ReorderAlert.trigger(product.id, alert_type, *_figures(product, alert_type))
            changes.append((alert, None))
            logger.info(
                "Reorder alert raised",
                product_id=str(product.id),
                alert_type=alert_type,
                current_stock=alert.current_stock,
                thresholds=thresholds.source,
            )
        elif not holds and alert is not None:
            alert.resolve_automatically()
            changes.append((alert, alert.version))
            logger.info("Reorder alert resolved", product_id=str(product.id), alert_type=alert_type)

    return changes
