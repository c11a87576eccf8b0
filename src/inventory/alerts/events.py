"""Domain events for the ReorderAlert aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from inventory.domain import inventory


@inventory.event(part_of="ReorderAlert")
class ReorderAlertRaised:
    """A product crossed a stock threshold and a new alert is open."""

    __version__ = 1

    alert_id = Identifier(required=True)
    product_id = Identifier(required=True)
    alert_type = String(required=True)
    current_stock = Integer(required=True)
    reorder_point = Integer(required=True)
    suggested_reorder_quantity = Integer(required=True)
    triggered_at = DateTime(required=True)


@inventory.event(part_of="ReorderAlert")
class ReorderAlertStatusChanged:
    __version__ = 1

    alert_id = Identifier(required=True)
    product_id = Identifier(required=True)
    alert_type = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_by = String()
    notes = String()
    changed_at = DateTime(required=True)
