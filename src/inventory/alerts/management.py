"""Operator-facing alert operations: status updates and listings."""

import structlog

from inventory import store
from inventory.alerts.alert import AlertStatus, AlertType, ReorderAlert
from inventory.utils.validation import coerce_choice

logger = structlog.get_logger(__name__)


def update_alert_status(alert_id, status, notes=None, actor=None):
    """Move an active alert to acknowledged, resolved or dismissed."""
    status = coerce_choice(AlertStatus, status, "status")

    def plan():
        alert = store.load(ReorderAlert, alert_id)
        expected = alert.version
        alert.change_status(status, actor=actor, notes=notes)
        return [(alert, expected)], alert

    alert = store.with_retries(plan, operation="update_alert_status")
    logger.info(
        "Alert status updated",
        alert_id=str(alert_id),
        product_id=str(alert.product_id),
        status=status,
        actor=actor,
    )
    return alert


def get_alert(alert_id):
    return store.load(ReorderAlert, alert_id)


def list_alerts(product_id=None, alert_type=None, status=None, limit=None, offset=0) -> store.Page:
    """Alerts, most recently triggered first."""
    return store.paginate(
        ReorderAlert,
        limit=limit,
        offset=offset,
        order_by="-triggered_at",
        product_id=str(product_id) if product_id else None,
        alert_type=coerce_choice(AlertType, alert_type, "alert_type") if alert_type is not None else None,
        alert_status=coerce_choice(AlertStatus, status, "status") if status is not None else None,
    )


def open_alerts_for(product_id) -> list:
    """Open alerts of a product, read straight from the repository."""
    alerts = store.fetch_all(ReorderAlert, product_id=str(product_id))
    return [alert for alert in alerts if alert.is_open]
