"""Result objects returned across the service boundary."""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import FailureReason, FieldError, RentalError


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of a mutating operation.

    Truthiness is the pass/fail boolean callers historically relied on;
    ``reason`` tells "not your booking" apart from "wrong state" and friends.
    """

    ok: bool
    reason: FailureReason | None = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, message: str = "") -> "OperationResult":
        return cls(ok=True, message=message)

    @classmethod
    def failure(cls, reason: FailureReason, message: str = "") -> "OperationResult":
        return cls(ok=False, reason=reason, message=message)

    @classmethod
    def from_error(cls, exc: RentalError) -> "OperationResult":
        return cls.failure(exc.reason, exc.message)


@dataclass
class ValidationResult:
    """Collects every field error found in one pass instead of failing fast."""

    errors: list[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, field_name: str, message: str) -> None:
        self.errors.append(FieldError(field_name, message))

    def extend(self, errors: list[FieldError]) -> None:
        self.errors.extend(errors)
