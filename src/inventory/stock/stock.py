"""ProductStock aggregate: the authoritative stock record for one product.

Stock Level Model:
    physical:  Units actually held in inventory
    reserved:  Held for open orders (not yet shipped)
    available: physical - reserved (what can be sold)

The record is created when a product is registered with the ledger and is
never deleted; a retired product is kept with status ``discontinued``.
``version`` is bumped by the persistence boundary on every committed
change and is what concurrent writers are checked against.
"""

from dataclasses import dataclass
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from inventory.domain import inventory
from inventory.exceptions import InsufficientStock, InvalidOperation, ProductUnavailable
from inventory.stock.events import (
    StockAdjusted,
    StockFulfilled,
    StockReceived,
    StockRegistered,
    StockReleased,
    StockReserved,
    StockReturned,
    StockSettingsUpdated,
    StockStatusChanged,
)
from inventory.utils.clock import utc_now
from inventory.utils.validation import require_quantity


class StockStatus(Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    DISCONTINUED = "discontinued"
    ON_HOLD = "on_hold"


# Set by operators, never derived from stock levels
MANUAL_STATUSES = frozenset({StockStatus.DISCONTINUED.value, StockStatus.ON_HOLD.value})


def percent_of(value, maximum):
    return value * 100 / maximum


@dataclass(frozen=True)
class StockSnapshot:
    """Point-in-time copy of a product's stock levels."""

    product_id: str
    physical_stock: int
    reserved_stock: int
    available_stock: int
    reorder_point: int
    max_stock_level: int
    stock_status: str
    version: int


@inventory.aggregate
class ProductStock:
    """Stock levels, thresholds and status for one product."""

    physical_stock = Integer(default=0, min_value=0)
    reserved_stock = Integer(default=0, min_value=0)
    available_stock = Integer(default=0, min_value=0)
    initial_physical_stock = Integer(default=0, min_value=0)
    reorder_point = Integer(default=10, min_value=0)
    reorder_quantity = Integer(default=50, min_value=0)
    max_stock_level = Integer(default=100, min_value=1)
    category_id = Identifier()
    stock_status = String(
        max_length=20,
        choices=StockStatus,
        default=StockStatus.IN_STOCK.value,
    )
    version = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def reserved_stock_cannot_exceed_physical_stock(self):
        if self.reserved_stock > self.physical_stock:
            raise ValidationError({"reserved_stock": ["Reserved stock cannot exceed physical stock"]})

    @invariant.post
    def available_stock_is_physical_minus_reserved(self):
        if self.available_stock != self.physical_stock - self.reserved_stock:
            raise ValidationError({"available_stock": ["Available stock must equal physical minus reserved stock"]})

    @classmethod
    def register(
        cls,
        product_id,
        physical_stock=0,
        reorder_point=10,
        reorder_quantity=50,
        max_stock_level=100,
        category_id=None,
    ):
        """Create the ledger record for a newly created product."""
        require_quantity(physical_stock, "physical_stock", allow_zero=True)
        now = utc_now()
        product = cls(
            id=str(product_id),
            physical_stock=physical_stock,
            reserved_stock=0,
            available_stock=physical_stock,
            initial_physical_stock=physical_stock,
            reorder_point=reorder_point,
            reorder_quantity=reorder_quantity,
            max_stock_level=max_stock_level,
            category_id=category_id,
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            StockRegistered(
                product_id=str(product.id),
                physical_stock=physical_stock,
                reorder_point=product.reorder_point,
                reorder_quantity=product.reorder_quantity,
                max_stock_level=product.max_stock_level,
                category_id=category_id,
                registered_at=now,
            )
        )
        return product

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def snapshot(self) -> StockSnapshot:
        return StockSnapshot(
            product_id=str(self.id),
            physical_stock=self.physical_stock,
            reserved_stock=self.reserved_stock,
            available_stock=self.available_stock,
            reorder_point=self.reorder_point,
            max_stock_level=self.max_stock_level,
            stock_status=self.stock_status,
            version=self.version,
        )

    @property
    def is_sellable(self):
        return self.stock_status not in MANUAL_STATUSES

    def derived_status(self, low_stock_percent):
        """Status implied by current levels; operator-set statuses stick."""
        if self.stock_status in MANUAL_STATUSES:
            return self.stock_status
        return self._level_status(low_stock_percent)

    def _level_status(self, low_stock_percent):
        if self.available_stock == 0:
            return StockStatus.OUT_OF_STOCK.value
        if (
            self.available_stock <= self.reorder_point
            or percent_of(self.available_stock, self.max_stock_level) <= low_stock_percent
        ):
            return StockStatus.LOW_STOCK.value
        return StockStatus.IN_STOCK.value

    # -------------------------------------------------------------------
    # Stock movements
    # -------------------------------------------------------------------
    def _set_levels(self, physical, reserved):
        with atomic_change(self):
            self.physical_stock = physical
            self.reserved_stock = reserved
            self.available_stock = physical - reserved
            self.updated_at = utc_now()

    def reserve(self, quantity, reservation_id, order_id):
        require_quantity(quantity)
        if not self.is_sellable:
            raise ProductUnavailable(self.id, self.stock_status)
        if self.available_stock < quantity:
            raise InsufficientStock(self.id, self.available_stock, quantity)

        previous_available = self.available_stock
        self._set_levels(self.physical_stock, self.reserved_stock + quantity)
        self.raise_(
            StockReserved(
                product_id=str(self.id),
                reservation_id=str(reservation_id),
                order_id=str(order_id),
                quantity=quantity,
                previous_available=previous_available,
                new_available=self.available_stock,
                reserved_at=self.updated_at,
            )
        )

    def release(self, quantity, reservation_id, order_id, reason=None):
        """Return reserved units to available stock."""
        require_quantity(quantity)
        if quantity > self.reserved_stock:
            raise InvalidOperation(f"Cannot release {quantity} units; only {self.reserved_stock} are reserved")

        self._set_levels(self.physical_stock, self.reserved_stock - quantity)
        self.raise_(
            StockReleased(
                product_id=str(self.id),
                reservation_id=str(reservation_id),
                order_id=str(order_id),
                quantity=quantity,
                new_available=self.available_stock,
                reason=reason,
                released_at=self.updated_at,
            )
        )

    def fulfill(self, quantity, reservation_id, order_id):
        """Ship reserved units: they leave both reserved and physical stock."""
        require_quantity(quantity)
        if quantity > self.reserved_stock:
            raise InvalidOperation(f"Cannot ship {quantity} units; only {self.reserved_stock} are reserved")

        self._set_levels(self.physical_stock - quantity, self.reserved_stock - quantity)
        self.raise_(
            StockFulfilled(
                product_id=str(self.id),
                reservation_id=str(reservation_id),
                order_id=str(order_id),
                quantity=quantity,
                new_physical=self.physical_stock,
                new_reserved=self.reserved_stock,
                fulfilled_at=self.updated_at,
            )
        )

    def return_to_stock(self, quantity, order_id, reason=None):
        require_quantity(quantity)
        self._set_levels(self.physical_stock + quantity, self.reserved_stock)
        self.raise_(
            StockReturned(
                product_id=str(self.id),
                order_id=str(order_id),
                quantity=quantity,
                new_physical=self.physical_stock,
                new_available=self.available_stock,
                reason=reason,
                returned_at=self.updated_at,
            )
        )

    def receive(self, quantity, reference=None):
        require_quantity(quantity)
        self._set_levels(self.physical_stock + quantity, self.reserved_stock)
        self.raise_(
            StockReceived(
                product_id=str(self.id),
                quantity=quantity,
                new_physical=self.physical_stock,
                new_available=self.available_stock,
                reference=reference,
                received_at=self.updated_at,
            )
        )

    def set_physical_stock(self, new_physical, adjustment_id):
        """Overwrite physical stock; reserved units must stay covered."""
        require_quantity(new_physical, "new_physical_stock", allow_zero=True)
        if new_physical < self.reserved_stock:
            raise InsufficientStock(self.id, new_physical, self.reserved_stock)

        previous_physical = self.physical_stock
        self._set_levels(new_physical, self.reserved_stock)
        self.raise_(
            StockAdjusted(
                product_id=str(self.id),
                adjustment_id=str(adjustment_id),
                previous_physical=previous_physical,
                new_physical=self.physical_stock,
                new_available=self.available_stock,
                adjusted_at=self.updated_at,
            )
        )

    # -------------------------------------------------------------------
    # Status and settings
    # -------------------------------------------------------------------
    def apply_status(self, new_status):
        """Record a status change, raising an event only when it differs."""
        if new_status == self.stock_status:
            return False

        previous_status = self.stock_status
        self.stock_status = new_status
        self.updated_at = utc_now()
        self.raise_(
            StockStatusChanged(
                product_id=str(self.id),
                previous_status=previous_status,
                new_status=new_status,
                changed_at=self.updated_at,
            )
        )
        return True

    def discontinue(self):
        if self.stock_status == StockStatus.DISCONTINUED.value:
            raise InvalidOperation(f"Product {self.id} is already discontinued")
        self.apply_status(StockStatus.DISCONTINUED.value)

    def place_on_hold(self):
        if self.stock_status == StockStatus.DISCONTINUED.value:
            raise InvalidOperation(f"Product {self.id} is discontinued")
        if self.stock_status == StockStatus.ON_HOLD.value:
            raise InvalidOperation(f"Product {self.id} is already on hold")
        self.apply_status(StockStatus.ON_HOLD.value)

    def release_hold(self, low_stock_percent):
        """Lift a hold, going back to the status the stock levels imply."""
        if self.stock_status != StockStatus.ON_HOLD.value:
            raise InvalidOperation(f"Product {self.id} is not on hold")
        self.apply_status(self._level_status(low_stock_percent))

    def update_settings(self, reorder_point=None, reorder_quantity=None, max_stock_level=None, category_id=None):
        if reorder_point is not None:
            require_quantity(reorder_point, "reorder_point", allow_zero=True)
            self.reorder_point = reorder_point
        if reorder_quantity is not None:
            require_quantity(reorder_quantity, "reorder_quantity", allow_zero=True)
            self.reorder_quantity = reorder_quantity
        if max_stock_level is not None:
            require_quantity(max_stock_level, "max_stock_level")
            self.max_stock_level = max_stock_level
        if category_id is not None:
            self.category_id = category_id
        self.updated_at = utc_now()
        self.raise_(
            StockSettingsUpdated(
                product_id=str(self.id),
                reorder_point=self.reorder_point,
                reorder_quantity=self.reorder_quantity,
                max_stock_level=self.max_stock_level,
                category_id=self.category_id,
                updated_at=self.updated_at,
            )
        )
