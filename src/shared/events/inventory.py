"""Cross-domain event contracts for stock ledger events.

These classes define the event shape for consumption by other domains
(the order subsystem and the notification subsystem). Consumers register
them as external events via domain.register_external_event() with the
matching type strings, e.g. "Inventory.ReorderAlertRaised.v1", so Protean's
stream deserialization works correctly.

The source-of-truth events are in src/inventory/stock/events.py and
src/inventory/alerts/events.py.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Identifier, Integer, String


class StockReserved(BaseEvent):
    """Stock was set aside for an order."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_available = Integer(required=True)
    new_available = Integer(required=True)
    reserved_at = DateTime(required=True)


class StockReleased(BaseEvent):
    """Reserved stock went back to available (cancellation or expiry)."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_available = Integer(required=True)
    reason = String()
    released_at = DateTime(required=True)


class ReorderAlertRaised(BaseEvent):
    """A product crossed a stock threshold; delivered to operators by notifications."""

    __version__ = 1

    alert_id = Identifier(required=True)
    product_id = Identifier(required=True)
    alert_type = String(required=True)
    current_stock = Integer(required=True)
    reorder_point = Integer(required=True)
    suggested_reorder_quantity = Integer(required=True)
    triggered_at = DateTime(required=True)
