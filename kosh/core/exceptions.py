"""Error kinds raised by the store and its services.

Callers distinguish "store not ready" (:class:`StoreNotInitializedError`)
from "store rejected the write" (everything under :class:`StoreRejected`).
"""

from __future__ import annotations

from typing import Optional


class StoreError(Exception):
    """Base class for every error raised by the inventory/ledger store."""


class StoreNotInitializedError(StoreError):
    def __init__(self, store: str = "primary") -> None:
        super().__init__(
            "Database not initialized ({} store). Call StoreContext.initialize() first.".format(store)
        )
        self.store = store


class StoreRejected(StoreError):
    """The store refused a read or write."""


class NotFoundError(StoreRejected):
    def __init__(self, entity: str, key) -> None:
        super().__init__("{} not found: {}".format(entity, key))
        self.entity = entity
        self.key = key


class ConstraintViolation(StoreRejected):
    """Unique or foreign-key constraint rejected the write."""

    def __init__(self, message: str, *, original: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original = original


class InvariantViolation(StoreRejected):
    """A stock or ledger rule was broken; nothing was committed."""


class InvalidSerialTransition(InvariantViolation):
    def __init__(self, serial_number: str, current: str, target: str) -> None:
        super().__init__(
            "Serial {} cannot move from '{}' to '{}'.".format(serial_number, current, target)
        )
        self.serial_number = serial_number
        self.current = current
        self.target = target


class InsufficientStock(InvariantViolation):
    def __init__(self, label: str, available, requested) -> None:
        super().__init__(
            "Insufficient stock for {}: available {}, requested {}.".format(label, available, requested)
        )
        self.available = available
        self.requested = requested


class OverpaymentError(InvariantViolation):
    def __init__(self, outstanding, amount) -> None:
        super().__init__(
            "Payment of {} exceeds outstanding balance {}.".format(amount, outstanding)
        )
        self.outstanding = outstanding
        self.amount = amount


class NonGstSaleNotRecorded(StoreError):
    """Stock and payment were committed but the secondary bill was not."""

    def __init__(self, reference_no: str, original: BaseException) -> None:
        super().__init__(
            "Non-GST sale {} was not saved to the secondary store: {}".format(reference_no, original)
        )
        self.reference_no = reference_no
        self.original = original


class AuthenticationError(StoreRejected):
    pass


class PermissionDenied(StoreRejected):
    pass


__all__ = [
    "AuthenticationError",
    "ConstraintViolation",
    "InsufficientStock",
    "InvalidSerialTransition",
    "InvariantViolation",
    "NonGstSaleNotRecorded",
    "NotFoundError",
    "OverpaymentError",
    "PermissionDenied",
    "StoreError",
    "StoreNotInitializedError",
    "StoreRejected",
]
