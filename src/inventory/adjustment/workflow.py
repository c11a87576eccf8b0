"""Adjustment workflow: request, then approve or reject, manual stock corrections.

Requesting validates the correction and stores it as pending without
touching the ledger. Approval computes the new physical stock from the
product's current state and commits the product, the adjustment, its
``manual_adjustment`` audit entry and any alert changes in one
version-checked write. Rejection only closes the adjustment.
"""

import structlog
from protean.exceptions import ValidationError

from inventory import store
from inventory.adjustment.adjustment import (
    AdjustmentType,
    ApprovalStatus,
    ReasonCode,
    StockAdjustment,
    check_reason,
    resulting_stock,
)
from inventory.audit.audit_log import AuditLogEntry, OperationType
from inventory.settings import get_settings
from inventory.stock.ledger import commit_changes
from inventory.stock.stock import ProductStock
from inventory.utils.validation import coerce_choice, require_quantity

logger = structlog.get_logger(__name__)


def create_adjustment(product_id, adjustment_type, quantity, reason_code, requested_by, notes=None):
    """Request a manual correction; returns the pending StockAdjustment."""
    adjustment_type = coerce_choice(AdjustmentType, adjustment_type, "adjustment_type")
    reason_code = coerce_choice(ReasonCode, reason_code, "reason_code")
    if not requested_by:
        raise ValidationError({"requested_by": ["Requester is required"]})
    require_quantity(quantity, allow_zero=adjustment_type == AdjustmentType.SET.value)

    limit = get_settings().max_adjustment_quantity
    if quantity > limit:
        raise ValidationError({"quantity": [f"Quantity {quantity} is unusually large; the limit is {limit}"]})
    check_reason(adjustment_type, reason_code)

    def plan():
        product = store.load(ProductStock, product_id)
        if resulting_stock(adjustment_type, quantity, product.physical_stock) == product.physical_stock:
            raise ValidationError({"quantity": ["Adjustment would not change physical stock"]})
        adjustment = StockAdjustment.request(
            product.id,
            adjustment_type,
            quantity,
            reason_code,
            requested_by,
            physical_stock=product.physical_stock,
            notes=notes,
        )
        return [(adjustment, None)], adjustment

    adjustment = store.with_retries(plan, operation="create_adjustment")
    logger.info(
        "Adjustment requested",
        adjustment_id=str(adjustment.id),
        product_id=str(product_id),
        adjustment_type=adjustment_type,
        reason_code=reason_code,
        quantity=quantity,
        requested_by=requested_by,
    )
    return adjustment


def approve_adjustment(adjustment_id, decision, approver, notes=None):
    """Decide a pending adjustment.

    ``decision`` is ``approved`` or ``rejected``. Deciding an adjustment
    that is no longer pending raises AdjustmentStateError. An approval that
    would leave physical stock below reserved stock raises InsufficientStock
    and leaves the adjustment pending, as does an approval that would no
    longer change physical stock (ValidationError).
    """
    decision = coerce_choice(ApprovalStatus, decision, "decision")
    if decision == ApprovalStatus.PENDING.value:
        raise ValidationError({"decision": ["Decision must be approved or rejected"]})
    if not approver:
        raise ValidationError({"approver": ["Approver is required"]})

    def plan():
        adjustment = store.load(StockAdjustment, adjustment_id)
        expected = adjustment.version

        if decision == ApprovalStatus.REJECTED.value:
            adjustment.reject(approver, notes=notes)
            return [(adjustment, expected)], adjustment

        product = store.load(ProductStock, adjustment.product_id)
        before = product.snapshot()
        new_physical = resulting_stock(adjustment.adjustment_type, adjustment.quantity, before.physical_stock)
        if new_physical == before.physical_stock:
            raise ValidationError({"quantity": ["Adjustment would no longer change physical stock"]})

        adjustment.approve(approver, before.physical_stock, new_physical, notes=notes)
        product.set_physical_stock(new_physical, adjustment.id)
        audit = AuditLogEntry.record(
            before,
            product.snapshot(),
            OperationType.MANUAL_ADJUSTMENT,
            abs(new_physical - before.physical_stock),
            adjustment_id=adjustment.id,
            reason=adjustment.reason_code,
            actor=approver,
        )
        return commit_changes(product, before, (adjustment, expected), (audit, None)), adjustment

    adjustment = store.with_retries(plan, operation="approve_adjustment")
    logger.info(
        "Adjustment decided",
        adjustment_id=str(adjustment_id),
        product_id=str(adjustment.product_id),
        decision=decision,
        approver=approver,
        new_physical_stock=adjustment.new_physical_stock,
    )
    return adjustment


def get_adjustment(adjustment_id) -> StockAdjustment:
    return store.load(StockAdjustment, adjustment_id)


def list_adjustments(product_id=None, status=None, limit=None, offset=0) -> store.Page:
    """Adjustments, newest request first."""
    return store.paginate(
        StockAdjustment,
        limit=limit,
        offset=offset,
        order_by="-requested_at",
        product_id=str(product_id) if product_id else None,
        approval_status=coerce_choice(ApprovalStatus, status, "status") if status is not None else None,
    )
