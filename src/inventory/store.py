"""Persistence boundary for the stock ledger.

Every ledger mutation is built as a *plan*: a function that reads the
aggregates it needs, applies the change in memory and returns the list of
``(aggregate, expected_version)`` pairs to write together with the value to
hand back to the caller. ``with_retries`` runs the plan and commits it through
``compare_and_set``:

- Inside a single ``UnitOfWork``, each aggregate's stored ``version`` is
  compared with the version the plan read (``None`` means the record must not
  exist yet).
- On a match, versions are bumped and everything is written in that same
  unit of work, so stock, reservations, audit entries and alerts land together
  or not at all.
- Updates are also guarded by Protean's own aggregate ``_version``: the write
  only applies while the stored row still holds the version that was loaded
  (``UPDATE ... WHERE _version = :loaded`` on relational providers). A writer
  in another process that commits first turns this commit into a conflict
  instead of a lost update. The process-local commit guard only serializes
  writers within one process.
- On a mismatch the plan is rebuilt from fresh reads, up to
  ``cas_max_attempts`` times, before ``ConcurrentModification`` surfaces.

Persistence failures are reported as ``LedgerUnavailable`` and never retried.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field

import structlog
from protean import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from sqlalchemy.exc import IntegrityError

from inventory.exceptions import (
    ConcurrentModification,
    LedgerError,
    LedgerUnavailable,
    NotFound,
    StaleWrite,
)
from inventory.settings import get_settings

logger = structlog.get_logger(__name__)

# Held for single repository calls and the check-and-write window, never across a plan
_commit_guard = threading.RLock()

_BATCH_SIZE = 100


@dataclass(frozen=True)
class Page:
    """One page of query results."""

    items: list = field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0


@contextmanager
def persistence(operation):
    """Report anything the persistence layer throws as LedgerUnavailable."""
    try:
        yield
    except (LedgerError, ValidationError, ExpectedVersionError):
        raise
    except Exception as exc:
        logger.error("Persistence failure", operation=operation, error=str(exc))
        raise LedgerUnavailable(f"{operation} failed: {exc}") from exc


def repository(aggregate_cls):
    return current_domain.repository_for(aggregate_cls)


def load(aggregate_cls, identifier):
    """Read one aggregate by id, raising NotFound when it does not exist."""
    with _commit_guard, persistence(f"load {aggregate_cls.__name__}"):
        try:
            return repository(aggregate_cls).get(str(identifier))
        except ObjectNotFoundError as exc:
            raise NotFound(aggregate_cls.__name__, identifier) from exc


def find(aggregate_cls, identifier):
    """Like load(), but returns None for a missing aggregate."""
    try:
        return load(aggregate_cls, identifier)
    except NotFound:
        return None


def _query(aggregate_cls, filters, order_by):
    queryset = repository(aggregate_cls)._dao.query
    filters = {key: value for key, value in filters.items() if value is not None}
    if filters:
        queryset = queryset.filter(**filters)
    if order_by:
        queryset = queryset.order_by(order_by)
    return queryset


def paginate(aggregate_cls, *, limit=None, offset=0, order_by="-created_at", **filters) -> Page:
    """Return one page of ``aggregate_cls`` records matching ``filters``.

    Filters whose value is None are ignored, so optional query arguments can
    be passed straight through.
    """
    limit = get_settings().page_size if limit is None else limit
    if not isinstance(limit, int) or limit < 1:
        raise ValidationError({"limit": ["Limit must be a positive integer"]})
    if not isinstance(offset, int) or offset < 0:
        raise ValidationError({"offset": ["Offset cannot be negative"]})

    with _commit_guard, persistence(f"query {aggregate_cls.__name__}"):
        result = _query(aggregate_cls, filters, order_by).offset(offset).limit(limit).all()
        return Page(items=list(result.items), total=result.total, limit=limit, offset=offset)


def fetch_all(aggregate_cls, *, order_by=None, **filters) -> list:
    """Return every matching record, reading in batches."""
    items = []
    offset = 0
    with persistence(f"query {aggregate_cls.__name__}"):
        while True:
            with _commit_guard:
                result = _query(aggregate_cls, filters, order_by).offset(offset).limit(_BATCH_SIZE).all()
            items.extend(result.items)
            offset += _BATCH_SIZE
            if offset >= result.total or not result.items:
                return items


def _check_version(aggregate, expected):
    stored = find(type(aggregate), aggregate.id)
    label = f"{type(aggregate).__name__} {aggregate.id}"
    if expected is None:
        if stored is not None:
            raise StaleWrite(f"{label} already exists")
    elif stored is None:
        raise StaleWrite(f"{label} disappeared")
    elif stored.version != expected:
        raise StaleWrite(f"{label} is at version {stored.version}, expected {expected}")


def compare_and_set(changes):
    """Write ``changes`` atomically if no aggregate moved since it was read.

    ``changes`` is a list of ``(aggregate, expected_version)`` pairs. Raises
    StaleWrite on a version mismatch without writing anything, including a
    mismatch only the database sees because another process committed between
    the check and the write.
    """
    with _commit_guard:
        try:
            with persistence("commit"):
                with UnitOfWork():
                    for aggregate, expected in changes:
                        _check_version(aggregate, expected)

                    for aggregate, expected in changes:
                        aggregate.version = 1 if expected is None else expected + 1
                        repository(type(aggregate)).add(aggregate)
        except ExpectedVersionError as exc:
            raise StaleWrite(f"Concurrent commit detected: {exc}") from exc
        except LedgerUnavailable as exc:
            if _caused_by_duplicate_key(exc):
                raise StaleWrite(f"Concurrent insert detected: {exc}") from exc
            raise


def _caused_by_duplicate_key(exc):
    cause = exc.__cause__
    while cause is not None:
        if isinstance(cause, IntegrityError):
            return True
        cause = cause.__cause__
    return False


def with_retries(plan, operation):
    """Build and commit ``plan`` until it lands or attempts run out.

    ``plan`` takes no arguments and returns ``(changes, result)``. An empty
    change list commits nothing and returns ``result`` as is.
    """
    attempts = get_settings().cas_max_attempts
    for attempt in range(1, attempts + 1):
        with persistence(operation):
            changes, result = plan()
        if not changes:
            return result

        try:
            compare_and_set(changes)
        except StaleWrite as exc:
            logger.info(
                "Conflicting write detected, retrying",
                operation=operation,
                attempt=attempt,
                reason=str(exc),
            )
            continue

        return result

    logger.warning("Giving up after repeated conflicts", operation=operation, attempts=attempts)
    raise ConcurrentModification(operation, attempts)
