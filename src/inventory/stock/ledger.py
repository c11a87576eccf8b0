"""Stock ledger operations.

Every mutation here is a plan run through ``inventory.store.with_retries``:
read the product (and any reservation involved), apply the change in memory,
build the audit entry, let the alert engine evaluate the result, and commit
all of it with one version-checked write. Nothing is visible until that write
succeeds; any error before it leaves the ledger untouched.

Reservations support partial fulfilment: ``fulfill_order`` may ship less than
the reserved quantity, and the reservation stays active until nothing is
outstanding.
"""

from dataclasses import dataclass
from datetime import timedelta

import structlog
from protean.exceptions import ValidationError

from inventory import store
from inventory.alerts.engine import evaluate
from inventory.alerts.management import open_alerts_for
from inventory.alerts.thresholds import resolve_thresholds
from inventory.audit.audit_log import AuditLogEntry, OperationType
from inventory.exceptions import InvalidReservationState, ReservationNotFound
from inventory.settings import get_settings
from inventory.stock.reservation import Reservation, ReservationStatus
from inventory.stock.stock import ProductStock
from inventory.utils.clock import as_utc, utc_now
from inventory.utils.validation import coerce_choice, require_quantity

logger = structlog.get_logger(__name__)

EXPIRY_REASON = "reservation expired"


@dataclass(frozen=True)
class StockCheck:
    """Answer to "can this quantity be sold right now?"."""

    product_id: str
    available_stock: int
    requested: int
    can_fulfill: bool
    stock_status: str | None
    reason: str = "available"


@dataclass(frozen=True)
class AvailabilityReport:
    """Stock checks for every line of a basket."""

    checks: list

    @property
    def all_available(self):
        return all(check.can_fulfill for check in self.checks)

    @property
    def unavailable(self):
        return [check for check in self.checks if not check.can_fulfill]


def _require_id(value, field_name):
    if value is None or str(value).strip() == "":
        raise ValidationError({field_name: [f"{field_name} is required"]})


def commit_changes(product, before, *records):
    """Collect one commit: the product, records written with it and the alert changes."""
    thresholds = resolve_thresholds(product)
    open_alerts = open_alerts_for(product.id) if before is not None else []
    alert_changes = evaluate(product, before, thresholds, open_alerts)
    expected = before.version if before is not None else None
    return [(product, expected), *records, *alert_changes]


def _active_reservation(product_id, order_id):
    """The order's active reservation on a product.

    Raises ReservationNotFound when the order never reserved the product and
    InvalidReservationState when every reservation it holds is closed.
    """
    reservations = store.fetch_all(Reservation, product_id=str(product_id), order_id=str(order_id))
    if not reservations:
        raise ReservationNotFound(product_id, order_id)

    active = next((r for r in reservations if r.is_active), None)
    if active is None:
        latest = max(reservations, key=lambda r: as_utc(r.reserved_at))
        raise InvalidReservationState(
            f"Reservation for order {order_id} on product {product_id} is already {latest.status}"
        )
    return active


# ---------------------------------------------------------------------------
# Product lifecycle
# ---------------------------------------------------------------------------
def register_product(
    product_id,
    physical_stock=0,
    reorder_point=None,
    reorder_quantity=None,
    max_stock_level=None,
    category_id=None,
):
    """Open the ledger record for a newly created catalog product."""
    _require_id(product_id, "product_id")
    settings = get_settings()
    reorder_point = settings.default_reorder_point if reorder_point is None else reorder_point
    reorder_quantity = settings.default_reorder_quantity if reorder_quantity is None else reorder_quantity
    max_stock_level = settings.default_max_stock_level if max_stock_level is None else max_stock_level
    require_quantity(physical_stock, "physical_stock", allow_zero=True)
    require_quantity(reorder_point, "reorder_point", allow_zero=True)
    require_quantity(reorder_quantity, "reorder_quantity", allow_zero=True)
    require_quantity(max_stock_level, "max_stock_level")

    def plan():
        if store.find(ProductStock, product_id) is not None:
            raise ValidationError({"product_id": [f"Product {product_id} is already registered"]})
        product = ProductStock.register(
            product_id,
            physical_stock=physical_stock,
            reorder_point=reorder_point,
            reorder_quantity=reorder_quantity,
            max_stock_level=max_stock_level,
            category_id=category_id,
        )
        return commit_changes(product, None), product

    product = store.with_retries(plan, operation="register_product")
    logger.info(
        "Product registered",
        product_id=str(product_id),
        physical_stock=physical_stock,
        stock_status=product.stock_status,
    )
    return product


def update_stock_settings(product_id, reorder_point=None, reorder_quantity=None, max_stock_level=None, category_id=None):
    """Change a product's thresholds and re-evaluate its alerts."""

    def plan():
        product = store.load(ProductStock, product_id)
        before = product.snapshot()
        product.update_settings(
            reorder_point=reorder_point,
            reorder_quantity=reorder_quantity,
            max_stock_level=max_stock_level,
            category_id=category_id,
        )
        return commit_changes(product, before), product

    product = store.with_retries(plan, operation="update_stock_settings")
    logger.info(
        "Stock settings updated",
        product_id=str(product_id),
        reorder_point=product.reorder_point,
        reorder_quantity=product.reorder_quantity,
        max_stock_level=product.max_stock_level,
    )
    return product


def _change_status(product_id, operation, change):
    def plan():
        product = store.load(ProductStock, product_id)
        before = product.snapshot()
        change(product)
        return commit_changes(product, before), product

    product = store.with_retries(plan, operation=operation)
    logger.info("Stock status changed", product_id=str(product_id), stock_status=product.stock_status)
    return product


def discontinue(product_id):
    """Retire a product. Discontinued products cannot be reserved and never come back."""
    return _change_status(product_id, "discontinue", lambda product: product.discontinue())


def place_on_hold(product_id):
    return _change_status(product_id, "place_on_hold", lambda product: product.place_on_hold())


def release_hold(product_id):
    return _change_status(
        product_id,
        "release_hold",
        lambda product: product.release_hold(resolve_thresholds(product).low_stock_percent),
    )


# ---------------------------------------------------------------------------
# Order flow
# ---------------------------------------------------------------------------
def reserve(product_id, order_id, quantity, expires_at=None):
    """Set ``quantity`` units aside for an order.

    Without an explicit ``expires_at`` the reservation expires after the
    configured TTL (no expiry when the TTL is 0).
    """
    require_quantity(quantity)
    _require_id(order_id, "order_id")
    if expires_at is None:
        ttl = get_settings().reservation_ttl_minutes
        expires_at = utc_now() + timedelta(minutes=ttl) if ttl else None

    def plan():
        product = store.load(ProductStock, product_id)
        before = product.snapshot()
        reservation = Reservation.place(product.id, order_id, quantity, expires_at=expires_at)
        product.reserve(quantity, reservation.id, order_id)

        existing = store.fetch_all(Reservation, product_id=str(product.id), order_id=str(order_id))
        if any(r.is_active for r in existing):
            raise ValidationError({"order_id": [f"Order {order_id} already holds an active reservation"]})

        audit = AuditLogEntry.record(
            before,
            product.snapshot(),
            OperationType.ORDER_RESERVATION,
            quantity,
            order_id=order_id,
            reservation_id=reservation.id,
        )
        return commit_changes(product, before, (reservation, None), (audit, None)), reservation

    reservation = store.with_retries(plan, operation="reserve")
    logger.info(
        "Stock reserved",
        product_id=str(product_id),
        order_id=str(order_id),
        reservation_id=str(reservation.id),
        quantity=quantity,
    )
    return reservation


def fulfill_order(product_id, order_id, quantity):
    """Ship reserved units: physical and reserved stock both drop by ``quantity``."""
    require_quantity(quantity)
    _require_id(order_id, "order_id")

    def plan():
        product = store.load(ProductStock, product_id)
        before = product.snapshot()
        reservation = _active_reservation(product.id, order_id)
        expected = reservation.version
        reservation.fulfill(quantity)
        product.fulfill(quantity, reservation.id, order_id)
        audit = AuditLogEntry.record(
            before,
            product.snapshot(),
            OperationType.ORDER_FULFILLMENT,
            quantity,
            order_id=order_id,
            reservation_id=reservation.id,
        )
        return commit_changes(product, before, (reservation, expected), (audit, None)), reservation

    reservation = store.with_retries(plan, operation="fulfill_order")
    logger.info(
        "Order fulfilled",
        product_id=str(product_id),
        order_id=str(order_id),
        quantity=quantity,
        outstanding=reservation.outstanding_quantity,
    )
    return reservation


def cancel_reservation(product_id, order_id, reason=None):
    """Release an order's active reservation back to available stock."""
    _require_id(order_id, "order_id")

    def plan():
        product = store.load(ProductStock, product_id)
        before = product.snapshot()
        reservation = _active_reservation(product.id, order_id)
        expected = reservation.version
        released = reservation.cancel(reason)
        product.release(released, reservation.id, order_id, reason=reservation.close_reason)
        audit = AuditLogEntry.record(
            before,
            product.snapshot(),
            OperationType.ORDER_CANCELLATION,
            released,
            order_id=order_id,
            reservation_id=reservation.id,
            reason=reservation.close_reason,
        )
        return commit_changes(product, before, (reservation, expected), (audit, None)), reservation

    reservation = store.with_retries(plan, operation="cancel_reservation")
    logger.info(
        "Reservation cancelled",
        product_id=str(product_id),
        order_id=str(order_id),
        reservation_id=str(reservation.id),
    )
    return reservation


def process_return(product_id, order_id, quantity, reason=None):
    """Put returned goods back into physical stock.

    Independent of any reservation the order held and of the product's status.
    """
    require_quantity(quantity)
    _require_id(order_id, "order_id")

    def plan():
        product = store.load(ProductStock, product_id)
        before = product.snapshot()
        product.return_to_stock(quantity, order_id, reason=reason)
        audit = AuditLogEntry.record(
            before,
            product.snapshot(),
            OperationType.RETURN_PROCESSING,
            quantity,
            order_id=order_id,
            reason=reason,
        )
        return commit_changes(product, before, (audit, None)), product

    product = store.with_retries(plan, operation="process_return")
    logger.info("Return processed", product_id=str(product_id), order_id=str(order_id), quantity=quantity)
    return product


def receive_stock(product_id, quantity, reference=None, actor=None):
    """Book in a replenishment delivery."""
    require_quantity(quantity)

    def plan():
        product = store.load(ProductStock, product_id)
        before = product.snapshot()
        product.receive(quantity, reference=reference)
        audit = AuditLogEntry.record(
            before,
            product.snapshot(),
            OperationType.REORDER_RECEIVED,
            quantity,
            reason=reference,
            actor=actor,
        )
        return commit_changes(product, before, (audit, None)), product

    product = store.with_retries(plan, operation="receive_stock")
    logger.info("Stock received", product_id=str(product_id), quantity=quantity, reference=reference)
    return product


def expire_if_due(reservation_id, as_of=None):
    """Expire a reservation whose ``expires_at`` has passed.

    Safe to call repeatedly: returns True only for the call that expired it,
    and False for reservations that are not due, have no expiry, or are
    already closed.
    """
    as_of = as_utc(as_of) or utc_now()

    def plan():
        reservation = store.load(Reservation, reservation_id)
        if not reservation.is_due(as_of):
            return [], False

        product = store.load(ProductStock, reservation.product_id)
        before = product.snapshot()
        expected = reservation.version
        released = reservation.expire()
        product.release(released, reservation.id, reservation.order_id, reason=EXPIRY_REASON)
        audit = AuditLogEntry.record(
            before,
            product.snapshot(),
            OperationType.ORDER_CANCELLATION,
            released,
            order_id=reservation.order_id,
            reservation_id=reservation.id,
            reason=EXPIRY_REASON,
        )
        return commit_changes(product, before, (reservation, expected), (audit, None)), True

    expired = store.with_retries(plan, operation="expire_if_due")
    if expired:
        logger.info("Reservation expired", reservation_id=str(reservation_id))
    return expired


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def _check(product, quantity):
    if not product.is_sellable:
        reason = "unavailable"
    elif product.available_stock < quantity:
        reason = "insufficient_stock"
    else:
        reason = "available"
    return StockCheck(
        product_id=str(product.id),
        available_stock=product.available_stock,
        requested=quantity,
        can_fulfill=reason == "available",
        stock_status=product.stock_status,
        reason=reason,
    )


def validate_stock(product_id, quantity) -> StockCheck:
    """Check availability without touching the ledger."""
    require_quantity(quantity)
    return _check(store.load(ProductStock, product_id), quantity)


def validate_items(items) -> AvailabilityReport:
    """Check a basket of ``(product_id, quantity)`` lines without touching the ledger.

    Each line is checked on its own; nothing is held between lines. An
    unknown product is reported as a line that cannot be fulfilled.
    """
    items = list(items or [])
    if not items:
        raise ValidationError({"items": ["At least one item is required"]})

    checks = []
    for product_id, quantity in items:
        _require_id(product_id, "product_id")
        require_quantity(quantity)
        product = store.find(ProductStock, product_id)
        if product is None:
            checks.append(
                StockCheck(
                    product_id=str(product_id),
                    available_stock=0,
                    requested=quantity,
                    can_fulfill=False,
                    stock_status=None,
                    reason="not_found",
                )
            )
            continue
        checks.append(_check(product, quantity))

    return AvailabilityReport(checks=checks)


def get_product(product_id) -> ProductStock:
    return store.load(ProductStock, product_id)


def get_reservation(reservation_id) -> Reservation:
    return store.load(Reservation, reservation_id)


def list_reservations(product_id=None, order_id=None, status=None, limit=None, offset=0) -> store.Page:
    """Reservations, newest first."""
    return store.paginate(
        Reservation,
        limit=limit,
        offset=offset,
        order_by="-reserved_at",
        product_id=str(product_id) if product_id else None,
        order_id=str(order_id) if order_id else None,
        status=coerce_choice(ReservationStatus, status, "status") if status is not None else None,
    )


def due_reservations(as_of=None) -> list:
    """Active reservations whose expiry has passed."""
    as_of = as_utc(as_of) or utc_now()
    active = store.fetch_all(Reservation, status=ReservationStatus.ACTIVE.value)
    return [reservation for reservation in active if reservation.is_due(as_of)]
