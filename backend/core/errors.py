"""Error taxonomy shared by the booking and wallet services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FailureReason(str, Enum):
    """Why an operation was refused; carried by errors and failure results."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    NOT_PERMITTED = "not_permitted"
    INVALID_STATE = "invalid_state"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_AMOUNT = "invalid_amount"
    CONCURRENCY = "concurrency"


@dataclass(frozen=True)
class FieldError:
    """A single per-field message, e.g. ("items[0].license_number", "...")."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class RentalError(Exception):
    """Base class for expected, recoverable failures of the booking core."""

    reason: FailureReason = FailureReason.VALIDATION

    def __init__(self, message: str = "", *, reason: FailureReason | None = None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason


class ValidationError(RentalError):
    """Malformed input; carries every field error found."""

    reason = FailureReason.VALIDATION

    def __init__(self, errors: list[FieldError] | str, *, reason: FailureReason | None = None):
        if isinstance(errors, str):
            errors = [FieldError("non_field_errors", errors)]
        self.errors = list(errors)
        super().__init__("; ".join(str(error) for error in self.errors), reason=reason)


class ConflictError(ValidationError):
    """Car or licence overlaps an existing reservation."""

    reason = FailureReason.CONFLICT


class InvalidAmountError(ValidationError):
    """Money amount that is zero, negative or not a number."""

    reason = FailureReason.INVALID_AMOUNT


class InsufficientFundsError(RentalError):
    reason = FailureReason.INSUFFICIENT_FUNDS


class NotFoundError(RentalError):
    reason = FailureReason.NOT_FOUND


class InvalidTransitionError(RentalError):
    """
    A booking item status change was refused.

    ``reason`` is NOT_PERMITTED when the actor may not perform the action and
    INVALID_STATE when the current status is not a valid predecessor.
    """

    reason = FailureReason.INVALID_STATE


class ConcurrencyError(RentalError):
    """Lock contention or a lost uniqueness race; safe to retry after re-reading."""

    reason = FailureReason.CONCURRENCY
