"""Alert thresholds.

Thresholds are percentages of a product's ``max_stock_level``. Global
defaults come from the ledger settings and can be overridden per category
and per product; a product override wins over a category override, which
wins over the defaults. Overrides are merged field by field, and disabled
overrides are skipped.

Saving an override re-evaluates the alerts of every product it covers in the
same commit, so a product pushed past a threshold by the override itself gets
its alert right away instead of never.
"""

from dataclasses import dataclass
from enum import Enum

import structlog
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from inventory import store
from inventory.alerts.engine import evaluate
from inventory.alerts.management import open_alerts_for
from inventory.domain import inventory
from inventory.settings import get_settings
from inventory.stock.stock import ProductStock
from inventory.utils.clock import utc_now
from inventory.utils.validation import coerce_choice

logger = structlog.get_logger(__name__)


class ThresholdScope(Enum):
    CATEGORY = "category"
    PRODUCT = "product"


@dataclass(frozen=True)
class Thresholds:
    low_stock_percent: int
    overstock_percent: int
    source: str = "global"


def override_id(scope, scope_id):
    return f"{scope}:{scope_id}"


@inventory.aggregate
class ThresholdOverride:
    scope = String(required=True, max_length=20, choices=ThresholdScope)
    scope_id = Identifier(required=True)
    low_stock_percent = Integer(min_value=0, max_value=100)
    overstock_percent = Integer(min_value=1)
    enabled = Boolean(default=True)
    version = Integer(default=0)
    updated_at = DateTime()


def resolve_thresholds(product, pending=None) -> Thresholds:
    """Effective thresholds for a ProductStock.

    ``pending`` is an unsaved ThresholdOverride that stands in for the stored
    override with the same id.
    """
    settings = get_settings()
    low = settings.low_stock_percent
    over = settings.overstock_percent
    source = "global"

    for scope, scope_id in (
        (ThresholdScope.CATEGORY.value, product.category_id),
        (ThresholdScope.PRODUCT.value, product.id),
    ):
        if not scope_id:
            continue
        identifier = override_id(scope, scope_id)
        if pending is not None and pending.id == identifier:
            override = pending
        else:
            override = store.find(ThresholdOverride, identifier)
        if override is None or not override.enabled:
            continue
        if override.low_stock_percent is not None:
            low = override.low_stock_percent
        if override.overstock_percent is not None:
            over = override.overstock_percent
        source = scope

    return Thresholds(low_stock_percent=low, overstock_percent=over, source=source)


def _covered_products(scope, scope_id):
    if scope == ThresholdScope.PRODUCT.value:
        product = store.find(ProductStock, scope_id)
        return [] if product is None else [product]
    return store.fetch_all(ProductStock, category_id=str(scope_id))


def _reevaluate(product, override):
    """Alert changes for one product when ``override`` replaces the stored one."""
    previous = resolve_thresholds(product)
    current = resolve_thresholds(product, pending=override)
    status = product.stock_status
    alert_changes = evaluate(
        product,
        product.snapshot(),
        current,
        open_alerts_for(product.id),
        previous_thresholds=previous,
    )
    if not alert_changes and product.stock_status == status:
        return []
    return [(product, product.version), *alert_changes]


def set_threshold_override(scope, scope_id, low_stock_percent=None, overstock_percent=None, enabled=True):
    """Create or replace the override for a category or product."""
    scope = coerce_choice(ThresholdScope, scope, "scope")
    if not scope_id:
        raise ValidationError({"scope_id": ["Scope id is required"]})
    identifier = override_id(scope, scope_id)

    def plan():
        existing = store.find(ThresholdOverride, identifier)
        if existing is None:
            override = ThresholdOverride(
                id=identifier,
                scope=scope,
                scope_id=str(scope_id),
                low_stock_percent=low_stock_percent,
                overstock_percent=overstock_percent,
                enabled=enabled,
                updated_at=utc_now(),
            )
            changes = [(override, None)]
        else:
            override = existing
            override.low_stock_percent = low_stock_percent
            override.overstock_percent = overstock_percent
            override.enabled = enabled
            override.updated_at = utc_now()
            changes = [(override, existing.version)]

        for product in _covered_products(scope, scope_id):
            changes.extend(_reevaluate(product, override))
        return changes, override

    override = store.with_retries(plan, operation="set_threshold_override")
    logger.info(
        "Threshold override saved",
        scope=scope,
        scope_id=str(scope_id),
        low_stock_percent=low_stock_percent,
        overstock_percent=overstock_percent,
        enabled=enabled,
    )
    return override
