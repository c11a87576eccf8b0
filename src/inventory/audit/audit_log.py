"""Stock movement audit trail.

One AuditLogEntry is appended per committed stock mutation, in the same unit
of work as the mutation itself. Entries are written once (the persistence
boundary refuses to overwrite an existing id) and never updated or deleted.
"""

from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from inventory.domain import inventory
from inventory.stock.stock import StockSnapshot
from inventory.utils.clock import utc_now


class OperationType(Enum):
    ORDER_RESERVATION = "order_reservation"
    ORDER_FULFILLMENT = "order_fulfillment"
    ORDER_CANCELLATION = "order_cancellation"
    RETURN_PROCESSING = "return_processing"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    REORDER_RECEIVED = "reorder_received"


@inventory.aggregate
class AuditLogEntry:
    product_id = Identifier(required=True)
    operation_type = String(required=True, max_length=30, choices=OperationType)
    quantity_affected = Integer(required=True)

    physical_stock_before = Integer(required=True)
    physical_stock_after = Integer(required=True)
    physical_stock_change = Integer(required=True)
    reserved_stock_before = Integer(required=True)
    reserved_stock_after = Integer(required=True)
    reserved_stock_change = Integer(required=True)
    available_stock_before = Integer(required=True)
    available_stock_after = Integer(required=True)
    available_stock_change = Integer(required=True)

    order_id = Identifier()
    reservation_id = Identifier()
    adjustment_id = Identifier()
    reason = String(max_length=500)
    actor = String(max_length=255)
    product_version_before = Integer()
    product_version_after = Integer()
    version = Integer(default=0)
    created_at = DateTime(required=True)

    @classmethod
    def record(
        cls,
        before: StockSnapshot,
        after: StockSnapshot,
        operation_type: OperationType,
        quantity: int,
        order_id=None,
        reservation_id=None,
        adjustment_id=None,
        reason=None,
        actor=None,
    ):
        """Build the entry describing the move from ``before`` to ``after``."""
        return cls(
            product_id=before.product_id,
            operation_type=operation_type.value,
            quantity_affected=quantity,
            physical_stock_before=before.physical_stock,
            physical_stock_after=after.physical_stock,
            physical_stock_change=after.physical_stock - before.physical_stock,
            reserved_stock_before=before.reserved_stock,
            reserved_stock_after=after.reserved_stock,
            reserved_stock_change=after.reserved_stock - before.reserved_stock,
            available_stock_before=before.available_stock,
            available_stock_after=after.available_stock,
            available_stock_change=after.available_stock - before.available_stock,
            order_id=str(order_id) if order_id is not None else None,
            reservation_id=str(reservation_id) if reservation_id is not None else None,
            adjustment_id=str(adjustment_id) if adjustment_id is not None else None,
            reason=reason,
            actor=actor,
            product_version_before=before.version,
            product_version_after=before.version + 1,
            created_at=utc_now(),
        )


@inventory.repository(part_of=AuditLogEntry)
class AuditLogRepository:
    """Repository for audit entries.

    The base repository provides the append; the helpers here serve
    reconciliation.
    """

    def physical_changes_for(self, product_id: str) -> list[int]:
        """Every recorded physical stock change for a product."""
        changes = []
        offset = 0
        while True:
            result = self._dao.query.filter(product_id=str(product_id)).offset(offset).limit(100).all()
            changes.extend(entry.physical_stock_change for entry in result.items)
            offset += 100
            if offset >= result.total or not result.items:
                return changes
