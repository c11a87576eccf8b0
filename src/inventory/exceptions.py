"""Errors raised by the stock ledger.

Input problems are reported with ``protean.exceptions.ValidationError`` like
everywhere else in the domain. The classes here cover business-rule
violations, state-machine guards, concurrency and persistence failures.
None of them are retried by the ledger except the internal stale-write
signal that becomes ConcurrentModification once attempts run out.
"""


class LedgerError(Exception):
    """Base class for stock ledger errors."""


class NotFound(LedgerError):
    def __init__(self, kind, identifier):
        self.kind = kind
        self.identifier = str(identifier)
        super().__init__(f"{kind} {self.identifier} not found")


class ReservationNotFound(NotFound):
    def __init__(self, product_id, order_id):
        self.product_id = str(product_id)
        self.order_id = str(order_id)
        super().__init__("Reservation", f"{self.product_id}/{self.order_id}")


class InsufficientStock(LedgerError):
    def __init__(self, product_id, available, requested):
        self.product_id = str(product_id)
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock for {self.product_id}: requested {requested}, available {available}")


class ProductUnavailable(LedgerError):
    def __init__(self, product_id, status):
        self.product_id = str(product_id)
        self.status = status
        super().__init__(f"Product {self.product_id} is {status}")


class InvalidReservationState(LedgerError):
    pass


class AdjustmentStateError(LedgerError):
    pass


class AlertStateError(LedgerError):
    pass


class InvalidOperation(LedgerError):
    pass


class ConcurrentModification(LedgerError):
    def __init__(self, operation, attempts):
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation} gave up after {attempts} conflicting attempts")


class LedgerUnavailable(LedgerError):
    """The persistence layer failed; nothing was committed."""


class StaleWrite(LedgerError):
    """A compare-and-set found a version other than the one the plan was built on.

    Internal to the retry loop in ``inventory.store``.
    """
