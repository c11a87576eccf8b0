"""ReorderAlert aggregate.

Alerts are opened by the alert engine when a product crosses a threshold.
There is at most one open alert per (product, alert_type). Operators may
acknowledge, resolve or dismiss an active alert; the engine resolves open
alerts on its own once stock recovers.
"""

from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String, Text

from inventory.alerts.events import ReorderAlertRaised, ReorderAlertStatusChanged
from inventory.domain import inventory
from inventory.exceptions import AlertStateError
from inventory.utils.clock import utc_now


class AlertType(Enum):
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    OVERSTOCK = "overstock"


class AlertStatus(Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


# Transitions operators may request
_MANUAL_TRANSITIONS = {
    AlertStatus.ACTIVE.value: {
        AlertStatus.ACKNOWLEDGED.value,
        AlertStatus.RESOLVED.value,
        AlertStatus.DISMISSED.value,
    },
}

# Alerts the engine still owns: refreshed while the condition holds, resolved when it clears
OPEN_STATUSES = frozenset({AlertStatus.ACTIVE.value, AlertStatus.ACKNOWLEDGED.value})


@inventory.aggregate
class ReorderAlert:
    product_id = Identifier(required=True)
    alert_type = String(required=True, max_length=20, choices=AlertType)
    alert_status = String(
        max_length=20,
        choices=AlertStatus,
        default=AlertStatus.ACTIVE.value,
    )
    current_stock = Integer(required=True, min_value=0)
    reorder_point = Integer(required=True, min_value=0)
    suggested_reorder_quantity = Integer(default=0, min_value=0)
    triggered_at = DateTime(required=True)
    acknowledged_by = String(max_length=255)
    acknowledged_at = DateTime()
    resolved_at = DateTime()
    notes = Text()
    version = Integer(default=0)

    @classmethod
    def trigger(cls, product_id, alert_type, current_stock, reorder_point, suggested_reorder_quantity):
        alert = cls(
            product_id=str(product_id),
            alert_type=alert_type,
            current_stock=current_stock,
            reorder_point=reorder_point,
            suggested_reorder_quantity=suggested_reorder_quantity,
            triggered_at=utc_now(),
        )
        alert.raise_(
            ReorderAlertRaised(
                alert_id=str(alert.id),
                product_id=alert.product_id,
                alert_type=alert_type,
                current_stock=current_stock,
                reorder_point=reorder_point,
                suggested_reorder_quantity=suggested_reorder_quantity,
                triggered_at=alert.triggered_at,
            )
        )
        return alert

    @property
    def is_open(self):
        return self.alert_status in OPEN_STATUSES

    def refresh(self, current_stock, reorder_point, suggested_reorder_quantity):
        """Bring the figures up to date; returns True if anything changed."""
        if (
            self.current_stock == current_stock
            and self.reorder_point == reorder_point
            and self.suggested_reorder_quantity == suggested_reorder_quantity
        ):
            return False
        self.current_stock = current_stock
        self.reorder_point = reorder_point
        self.suggested_reorder_quantity = suggested_reorder_quantity
        return True

    def change_status(self, new_status, actor=None, notes=None):
        """Apply an operator-requested transition."""
        allowed = _MANUAL_TRANSITIONS.get(self.alert_status, set())
        if new_status not in allowed:
            raise AlertStateError(f"Alert {self.id} is {self.alert_status}; cannot become {new_status}")
        self._move_to(new_status, actor, notes)

    def resolve_automatically(self):
        if not self.is_open:
            raise AlertStateError(f"Alert {self.id} is {self.alert_status} and cannot be resolved")
        self._move_to(AlertStatus.RESOLVED.value, "system", "Stock recovered past the threshold")

    def _move_to(self, new_status, actor, notes):
        previous_status = self.alert_status
        now = utc_now()
        self.alert_status = new_status
        if new_status == AlertStatus.ACKNOWLEDGED.value:
            self.acknowledged_by = actor
            self.acknowledged_at = now
        elif new_status in (AlertStatus.RESOLVED.value, AlertStatus.DISMISSED.value):
            self.resolved_at = now
        if notes:
            self.notes = notes
        self.raise_(
            ReorderAlertStatusChanged(
                alert_id=str(self.id),
                product_id=str(self.product_id),
                alert_type=self.alert_type,
                previous_status=previous_status,
                new_status=new_status,
                changed_by=actor,
                notes=notes,
                changed_at=now,
            )
        )
