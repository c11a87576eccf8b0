"""StockAdjustment aggregate: an approval-gated manual stock correction.

An adjustment is requested as ``pending`` and decided exactly once. Approval
is when the correction is computed against the product's stock at that
moment and applied to the ledger; rejection only closes the request.
"""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from inventory.adjustment.events import AdjustmentApproved, AdjustmentRejected, AdjustmentRequested
from inventory.domain import inventory
from inventory.exceptions import AdjustmentStateError
from inventory.utils.clock import utc_now


class AdjustmentType(Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    SET = "set"


class ReasonCode(Enum):
    RECEIVED = "received"
    CUSTOMER_RETURN = "customer_return"
    SUPPLIER_DELIVERY = "supplier_delivery"
    DAMAGED = "damaged"
    LOST = "lost"
    SALE = "sale"
    PHYSICAL_COUNT = "physical_count"
    CORRECTION = "correction"
    OTHER = "other"


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


_INCREASE = AdjustmentType.INCREASE.value
_DECREASE = AdjustmentType.DECREASE.value
_SET = AdjustmentType.SET.value

# Which adjustment types each reason may be used with
REASON_RULES = {
    ReasonCode.RECEIVED.value: {_INCREASE},
    ReasonCode.CUSTOMER_RETURN.value: {_INCREASE},
    ReasonCode.SUPPLIER_DELIVERY.value: {_INCREASE},
    ReasonCode.DAMAGED.value: {_DECREASE},
    ReasonCode.LOST.value: {_DECREASE},
    ReasonCode.SALE.value: {_DECREASE},
    ReasonCode.PHYSICAL_COUNT.value: {_INCREASE, _DECREASE, _SET},
    ReasonCode.CORRECTION.value: {_INCREASE, _DECREASE},
    ReasonCode.OTHER.value: {_INCREASE, _DECREASE},
}


def check_reason(adjustment_type, reason_code):
    if adjustment_type not in REASON_RULES[reason_code]:
        if adjustment_type == _SET:
            message = "Set adjustments are reserved for physical counts"
        else:
            allowed = " or ".join(sorted(REASON_RULES[reason_code]))
            message = f"Reason '{reason_code}' only applies to {allowed} adjustments"
        raise ValidationError({"reason_code": [message]})


def resulting_stock(adjustment_type, quantity, physical_stock):
    """Physical stock after applying an adjustment to ``physical_stock``."""
    if adjustment_type == _INCREASE:
        return physical_stock + quantity
    if adjustment_type == _DECREASE:
        return max(physical_stock - quantity, 0)
    return quantity


@inventory.aggregate
class StockAdjustment:
    product_id = Identifier(required=True)
    adjustment_type = String(required=True, max_length=20, choices=AdjustmentType)
    reason_code = String(required=True, max_length=30, choices=ReasonCode)
    quantity = Integer(required=True, min_value=0)
    physical_stock_at_request = Integer(min_value=0)
    previous_physical_stock = Integer(min_value=0)
    new_physical_stock = Integer(min_value=0)
    approval_status = String(
        max_length=20,
        choices=ApprovalStatus,
        default=ApprovalStatus.PENDING.value,
    )
    requested_by = String(required=True, max_length=255)
    approved_by = String(max_length=255)
    notes = Text()
    decision_notes = Text()
    requested_at = DateTime(required=True)
    decided_at = DateTime()
    version = Integer(default=0)

    @classmethod
    def request(cls, product_id, adjustment_type, quantity, reason_code, requested_by, physical_stock, notes=None):
        adjustment = cls(
            product_id=str(product_id),
            adjustment_type=adjustment_type,
            reason_code=reason_code,
            quantity=quantity,
            physical_stock_at_request=physical_stock,
            requested_by=requested_by,
            notes=notes,
            requested_at=utc_now(),
        )
        adjustment.raise_(
            AdjustmentRequested(
                adjustment_id=str(adjustment.id),
                product_id=adjustment.product_id,
                adjustment_type=adjustment_type,
                reason_code=reason_code,
                quantity=quantity,
                requested_by=requested_by,
                requested_at=adjustment.requested_at,
            )
        )
        return adjustment

    @property
    def is_pending(self):
        return self.approval_status == ApprovalStatus.PENDING.value

    def _ensure_pending(self):
        if not self.is_pending:
            raise AdjustmentStateError(f"Adjustment {self.id} is already {self.approval_status}")

    def approve(self, approver, previous_physical_stock, new_physical_stock, notes=None):
        self._ensure_pending()
        self.approval_status = ApprovalStatus.APPROVED.value
        self.approved_by = approver
        self.previous_physical_stock = previous_physical_stock
        self.new_physical_stock = new_physical_stock
        self.decision_notes = notes
        self.decided_at = utc_now()
        self.raise_(
            AdjustmentApproved(
                adjustment_id=str(self.id),
                product_id=str(self.product_id),
                approved_by=approver,
                previous_physical_stock=previous_physical_stock,
                new_physical_stock=new_physical_stock,
                approved_at=self.decided_at,
            )
        )

    def reject(self, approver, notes=None):
        self._ensure_pending()
        self.approval_status = ApprovalStatus.REJECTED.value
        self.approved_by = approver
        self.decision_notes = notes
        self.decided_at = utc_now()
        self.raise_(
            AdjustmentRejected(
                adjustment_id=str(self.id),
                product_id=str(self.product_id),
                rejected_by=approver,
                notes=notes,
                rejected_at=self.decided_at,
            )
        )
