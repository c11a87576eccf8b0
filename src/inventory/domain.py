"""Inventory bounded context: the stock ledger.

Tracks physical and reserved stock per product, order reservations, approved
manual adjustments, reorder alerts and the append-only audit trail behind
every stock movement.
"""

import structlog
from protean.domain import Domain

inventory = Domain(name="inventory")

logger = structlog.get_logger(__name__)
