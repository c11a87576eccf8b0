"""Reservation aggregate: a hold on a product's stock for one order.

Reservations start ``active`` and move exactly once to a terminal state:
``fulfilled`` (everything shipped), ``cancelled`` (released by the order
subsystem) or ``expired`` (released by the expiry sweep). Partial shipments
keep the reservation active and grow ``fulfilled_quantity`` until nothing is
outstanding.
"""

from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from inventory.domain import inventory
from inventory.exceptions import InvalidReservationState
from inventory.stock.events import ReservationClosed, ReservationFulfilled
from inventory.utils.clock import as_utc, utc_now
from inventory.utils.validation import require_quantity


class ReservationStatus(Enum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


_VALID_TRANSITIONS = {
    ReservationStatus.ACTIVE.value: {
        ReservationStatus.FULFILLED.value,
        ReservationStatus.CANCELLED.value,
        ReservationStatus.EXPIRED.value,
    },
    ReservationStatus.FULFILLED.value: set(),
    ReservationStatus.CANCELLED.value: set(),
    ReservationStatus.EXPIRED.value: set(),
}


@inventory.aggregate
class Reservation:
    product_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    fulfilled_quantity = Integer(default=0, min_value=0)
    status = String(
        max_length=20,
        choices=ReservationStatus,
        default=ReservationStatus.ACTIVE.value,
    )
    reserved_at = DateTime(required=True)
    expires_at = DateTime()
    closed_at = DateTime()
    close_reason = String(max_length=255)
    version = Integer(default=0)

    @classmethod
    def place(cls, product_id, order_id, quantity, expires_at=None):
        require_quantity(quantity)
        return cls(
            product_id=str(product_id),
            order_id=str(order_id),
            quantity=quantity,
            reserved_at=utc_now(),
            expires_at=as_utc(expires_at),
        )

    @property
    def is_active(self):
        return self.status == ReservationStatus.ACTIVE.value

    @property
    def outstanding_quantity(self):
        return self.quantity - self.fulfilled_quantity

    def is_due(self, as_of=None):
        if not self.is_active or self.expires_at is None:
            return False
        return as_utc(self.expires_at) <= as_utc(as_of or utc_now())

    def _transition(self, target):
        if target not in _VALID_TRANSITIONS[self.status]:
            raise InvalidReservationState(
                f"Reservation {self.id} for order {self.order_id} is {self.status}; cannot become {target}"
            )
        self.status = target
        self.closed_at = utc_now()

    def fulfill(self, quantity):
        """Ship ``quantity`` units, closing the reservation once nothing is outstanding."""
        require_quantity(quantity)
        if not self.is_active:
            raise InvalidReservationState(f"Reservation {self.id} for order {self.order_id} is {self.status}")
        if quantity > self.outstanding_quantity:
            raise InvalidReservationState(
                f"Cannot fulfil {quantity} units; reservation {self.id} has {self.outstanding_quantity} outstanding"
            )

        self.fulfilled_quantity += quantity
        if self.outstanding_quantity == 0:
            self._transition(ReservationStatus.FULFILLED.value)
        self.raise_(
            ReservationFulfilled(
                reservation_id=str(self.id),
                order_id=str(self.order_id),
                quantity=quantity,
                fulfilled_quantity=self.fulfilled_quantity,
                outstanding_quantity=self.outstanding_quantity,
                fulfilled_at=utc_now(),
            )
        )

    def cancel(self, reason=None):
        """Close the reservation; returns the units to hand back to available stock."""
        return self._close(ReservationStatus.CANCELLED.value, reason or "cancelled")

    def expire(self):
        return self._close(ReservationStatus.EXPIRED.value, "reservation expired")

    def _close(self, status, reason):
        released = self.outstanding_quantity
        self._transition(status)
        self.close_reason = reason
        self.raise_(
            ReservationClosed(
                reservation_id=str(self.id),
                order_id=str(self.order_id),
                status=status,
                released_quantity=released,
                reason=reason,
                closed_at=self.closed_at,
            )
        )
        return released
