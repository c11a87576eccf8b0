"""Domain events for the ProductStock and Reservation aggregates.

Events are raised alongside each committed ledger mutation and published
through the domain's event store when the unit of work commits.
"""

from protean.fields import DateTime, Identifier, Integer, String

from inventory.domain import inventory


@inventory.event(part_of="ProductStock")
class StockRegistered:
    """A product was registered with the ledger."""

    __version__ = 1

    product_id = Identifier(required=True)
    physical_stock = Integer(required=True)
    reorder_point = Integer(required=True)
    reorder_quantity = Integer(required=True)
    max_stock_level = Integer(required=True)
    category_id = Identifier()
    registered_at = DateTime(required=True)


@inventory.event(part_of="ProductStock")
class StockReserved:
    """Stock was set aside for an order."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_available = Integer(required=True)
    new_available = Integer(required=True)
    reserved_at = DateTime(required=True)


@inventory.event(part_of="ProductStock")
class StockReleased:
    """Reserved stock went back to available (cancellation or expiry)."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_available = Integer(required=True)
    reason = String()
    released_at = DateTime(required=True)


@inventory.event(part_of="ProductStock")
class StockFulfilled:
    """Reserved stock physically left the warehouse for an order."""

    __version__ = 1

    product_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_physical = Integer(required=True)
    new_reserved = Integer(required=True)
    fulfilled_at = DateTime(required=True)


@inventory.event(part_of="ProductStock")
class StockReturned:
    """Returned goods were put back on the shelf."""

    __version__ = 1

    product_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_physical = Integer(required=True)
    new_available = Integer(required=True)
    reason = String()
    returned_at = DateTime(required=True)


@inventory.event(part_of="ProductStock")
class StockReceived:
    """A replenishment delivery was booked in."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    new_physical = Integer(required=True)
    new_available = Integer(required=True)
    reference = String()  # Receiving document number
    received_at = DateTime(required=True)


@inventory.event(part_of="ProductStock")
class StockAdjusted:
    """An approved manual adjustment changed physical stock."""

    __version__ = 1

    product_id = Identifier(required=True)
    adjustment_id = Identifier(required=True)
    previous_physical = Integer(required=True)
    new_physical = Integer(required=True)
    new_available = Integer(required=True)
    adjusted_at = DateTime(required=True)


@inventory.event(part_of="ProductStock")
class StockStatusChanged:
    __version__ = 1

    product_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@inventory.event(part_of="ProductStock")
class StockSettingsUpdated:
    __version__ = 1

    product_id = Identifier(required=True)
    reorder_point = Integer(required=True)
    reorder_quantity = Integer(required=True)
    max_stock_level = Integer(required=True)
    category_id = Identifier()
    updated_at = DateTime(required=True)


@inventory.event(part_of="Reservation")
class ReservationFulfilled:
    """Some or all of a reservation was shipped."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    fulfilled_quantity = Integer(required=True)
    outstanding_quantity = Integer(required=True)
    fulfilled_at = DateTime(required=True)


@inventory.event(part_of="Reservation")
class ReservationClosed:
    """A reservation reached a terminal state without being fully shipped."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    status = String(required=True)
    released_quantity = Integer(required=True)
    reason = String()
    closed_at = DateTime(required=True)
