"""Domain events for the StockAdjustment aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from inventory.domain import inventory


@inventory.event(part_of="StockAdjustment")
class AdjustmentRequested:
    __version__ = 1

    adjustment_id = Identifier(required=True)
    product_id = Identifier(required=True)
    adjustment_type = String(required=True)
    reason_code = String(required=True)
    quantity = Integer(required=True)
    requested_by = String(required=True)
    requested_at = DateTime(required=True)


@inventory.event(part_of="StockAdjustment")
class AdjustmentApproved:
    __version__ = 1

    adjustment_id = Identifier(required=True)
    product_id = Identifier(required=True)
    approved_by = String(required=True)
    previous_physical_stock = Integer(required=True)
    new_physical_stock = Integer(required=True)
    approved_at = DateTime(required=True)


@inventory.event(part_of="StockAdjustment")
class AdjustmentRejected:
    __version__ = 1

    adjustment_id = Identifier(required=True)
    product_id = Identifier(required=True)
    rejected_by = String(required=True)
    notes = Text()
    rejected_at = DateTime(required=True)
