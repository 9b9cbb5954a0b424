"""Domain helpers for booking intervals, rental amounts and booking numbers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal

from django.db.models import IntegerField, Max
from django.db.models.functions import Cast, Substr
from django.utils import timezone

from core.errors import FieldError
from core.pricing import ZERO, quantize_money, to_decimal

from .models import Booking

HOURS_PER_DAY = Decimal(24)
BOOKING_NUMBER_SEQUENCE_DIGITS = 4


@dataclass(frozen=True)
class ReservationInterval:
    """Half-open window [pickup_at, return_at) during which a resource is held."""

    resource_id: object
    pickup_at: datetime
    return_at: datetime

    def __post_init__(self):
        if not self.pickup_at < self.return_at:
            raise ValueError("pickup_at must be strictly before return_at")

    def overlaps(self, other: "ReservationInterval") -> bool:
        return intervals_overlap(self.pickup_at, self.return_at, other.pickup_at, other.return_at)


def intervals_overlap(a_start, a_end, b_start, b_end) -> bool:
    """
    Return True if [a_start, a_end) and [b_start, b_end) intersect.

    Touching edges (one ends exactly when the other starts) do not overlap.
    """
    return a_start < b_end and a_end > b_start


def rental_days(pickup_at: datetime, return_at: datetime) -> Decimal:
    """Fractional number of days between pickup and return, never negative."""
    seconds = to_decimal((return_at - pickup_at).total_seconds())
    days = seconds / Decimal(3600) / HOURS_PER_DAY
    return days if days > ZERO else ZERO


def rental_amount(price_per_day, days) -> Decimal:
    return quantize_money(to_decimal(price_per_day) * to_decimal(days))


def validate_booking_dates(
    pickup_at: datetime | None,
    return_at: datetime | None,
    *,
    today: date | None = None,
) -> list[FieldError]:
    """Return every date problem of a booking request; empty when valid."""
    errors: list[FieldError] = []
    if pickup_at is None:
        errors.append(FieldError("pickup_at", "Pickup date is required."))
    if return_at is None:
        errors.append(FieldError("return_at", "Return date is required."))
    if errors:
        return errors

    today = today or timezone.localdate()
    start_of_today = timezone.make_aware(datetime.combine(today, time.min))
    if pickup_at <= start_of_today:
        errors.append(FieldError("pickup_at", "Pickup date must be after today."))
    if return_at <= pickup_at:
        errors.append(FieldError("return_at", "Return date must be after pickup date."))
    return errors


def next_booking_number(day: date | None = None) -> str:
    """
    Return the next ``YYYYMMDD-NNNN`` number for ``day``.

    The sequence is compared numerically, so it keeps growing past 9999 with
    wider numbers.

    Not safe against concurrent callers on its own; the unique constraint on
    ``booking_number`` catches clashes and the caller retries.
    """
    day = day or timezone.localdate()
    prefix = day.strftime("%Y%m%d")
    last_sequence = (
        Booking.objects.filter(booking_number__regex=rf"^{prefix}-[0-9]+$")
        .annotate(sequence=Cast(Substr("booking_number", len(prefix) + 2), IntegerField()))
        .aggregate(last=Max("sequence"))["last"]
    )
    sequence = (last_sequence or 0) + 1
    return f"{prefix}-{sequence:0{BOOKING_NUMBER_SEQUENCE_DIGITS}d}"
