"""Read side of the audit trail: filtered listings and reconciliation."""

from dataclasses import dataclass
from datetime import datetime

from protean.exceptions import ValidationError

from inventory import store
from inventory.audit.audit_log import AuditLogEntry, OperationType
from inventory.stock.stock import ProductStock
from inventory.utils.clock import as_utc
from inventory.utils.validation import coerce_choice


@dataclass(frozen=True)
class Reconciliation:
    """Audit totals compared with the product's current physical stock."""

    product_id: str
    initial_physical_stock: int
    current_physical_stock: int
    audited_change: int

    @property
    def balanced(self) -> bool:
        return self.initial_physical_stock + self.audited_change == self.current_physical_stock


def list_audit_logs(
    product_id=None,
    order_id=None,
    operation_type=None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit=None,
    offset=0,
) -> store.Page:
    """Audit entries, newest first, filtered by product, order, kind and date range."""
    if operation_type is not None:
        operation_type = coerce_choice(OperationType, operation_type, "operation_type")
    start, end = as_utc(start), as_utc(end)
    if start and end and start > end:
        raise ValidationError({"start": ["Start of the date range must not be after its end"]})

    return store.paginate(
        AuditLogEntry,
        limit=limit,
        offset=offset,
        product_id=str(product_id) if product_id else None,
        order_id=str(order_id) if order_id else None,
        operation_type=operation_type,
        created_at__gte=start,
        created_at__lte=end,
    )


def reconcile(product_id) -> Reconciliation:
    """Check that the audited physical changes explain the current stock."""
    product = store.load(ProductStock, product_id)
    with store.persistence("reconcile"):
        changes = store.repository(AuditLogEntry).physical_changes_for(product.id)
    return Reconciliation(
        product_id=str(product.id),
        initial_physical_stock=product.initial_physical_stock,
        current_physical_stock=product.physical_stock,
        audited_change=sum(changes),
    )
