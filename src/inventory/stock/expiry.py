"""Reservation expiry sweep.

The ledger owns no timers. This sweep is meant to be triggered periodically
by an external scheduler (cron, K8s CronJob) through
``manage.py expire-reservations``. It finds active reservations past their
expiry and calls ``expire_if_due`` for each one; a reservation closed by
someone else in the meantime is simply skipped.
"""

import structlog

from inventory.exceptions import ConcurrentModification, InvalidOperation, InvalidReservationState
from inventory.stock.ledger import due_reservations, expire_if_due
from inventory.utils.clock import as_utc, utc_now

logger = structlog.get_logger(__name__)


def expire_due_reservations(as_of=None) -> int:
    """Expire every reservation due at ``as_of`` (default: now). Returns how many expired."""
    as_of = as_utc(as_of) or utc_now()
    due = due_reservations(as_of)

    logger.info("Checking for stale reservations", as_of=as_of.isoformat(), candidates=len(due))
    if not due:
        return 0

    expired_count = 0
    for reservation in due:
        try:
            if expire_if_due(reservation.id, as_of=as_of):
                expired_count += 1
                logger.info(
                    "Released stale reservation",
                    reservation_id=str(reservation.id),
                    order_id=str(reservation.order_id),
                    expired_at=str(reservation.expires_at),
                )
        except (ConcurrentModification, InvalidReservationState, InvalidOperation) as exc:
            logger.warning(
                "Failed to release stale reservation",
                reservation_id=str(reservation.id),
                error=str(exc),
            )

    logger.info("Stale reservation cleanup complete", expired_count=expired_count)
    return expired_count
