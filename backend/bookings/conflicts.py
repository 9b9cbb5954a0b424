"""Car availability and driver licence conflict detection."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .models import BookingItem


@dataclass(frozen=True)
class DriverLicense:
    license_number: str
    car_id: Optional[int] = None
    full_name: str = ""

    @property
    def normalized(self) -> str:
        return (self.license_number or "").strip()


class LicenseConflictReason(str, Enum):
    DUPLICATE_IN_REQUEST = "duplicate_in_request"
    OVERLAPS_EXISTING = "overlaps_existing"


@dataclass(frozen=True)
class LicenseConflict:
    index: int
    driver: DriverLicense
    reason: LicenseConflictReason


def find_unavailable_car_ids(
    car_ids: Iterable[int],
    pickup_at: datetime,
    return_at: datetime,
    *,
    exclude_booking_id: Optional[int] = None,
) -> set[int]:
    """
    Return the requested cars held by a blocking booking item in the window.

    Cancelled and completed items never block; soft-deleted items and items of
    soft-deleted bookings are ignored.
    """
    ids = set(car_ids)
    if not ids:
        return set()
    qs = BookingItem.objects.blocking().overlapping(pickup_at, return_at).filter(car_id__in=ids)
    if exclude_booking_id is not None:
        qs = qs.exclude(booking_id=exclude_booking_id)
    return set(qs.values_list("car_id", flat=True).distinct())


def check_availability(car_ids: Iterable[int], pickup_at: datetime, return_at: datetime) -> bool:
    """True when none of the cars is held during [pickup_at, return_at)."""
    return not find_unavailable_car_ids(car_ids, pickup_at, return_at)


def find_license_conflicts(
    drivers: Iterable[DriverLicense],
    pickup_at: datetime,
    return_at: datetime,
    *,
    exclude_booking_id: Optional[int] = None,
) -> list[LicenseConflict]:
    """
    Report drivers whose licence cannot be used for this booking.

    A licence listed more than once in the request is reported for every
    occurrence, whatever the dates. Otherwise a licence recorded on any
    non-cancelled item whose booking intersects the window is reported.
    Blank licence numbers are left to field validation.
    """
    drivers = list(drivers)
    counts = Counter(driver.normalized for driver in drivers if driver.normalized)

    conflicts: list[LicenseConflict] = []
    remaining: list[tuple[int, DriverLicense]] = []
    for index, driver in enumerate(drivers):
        number = driver.normalized
        if not number:
            continue
        if counts[number] > 1:
            conflicts.append(
                LicenseConflict(index, driver, LicenseConflictReason.DUPLICATE_IN_REQUEST)
            )
        else:
            remaining.append((index, driver))

    if remaining:
        qs = (
            BookingItem.objects.active()
            .exclude(status=BookingItem.Status.CANCELLED)
            .overlapping(pickup_at, return_at)
            .filter(driver_license_number__in={driver.normalized for _, driver in remaining})
        )
        if exclude_booking_id is not None:
            qs = qs.exclude(booking_id=exclude_booking_id)
        taken = set(qs.values_list("driver_license_number", flat=True))
        for index, driver in remaining:
            if driver.normalized in taken:
                conflicts.append(
                    LicenseConflict(index, driver, LicenseConflictReason.OVERLAPS_EXISTING)
                )

    conflicts.sort(key=lambda conflict: conflict.index)
    return conflicts


def check_license_conflicts(
    drivers: Iterable[DriverLicense],
    pickup_at: datetime,
    return_at: datetime,
) -> list[DriverLicense]:
    return [conflict.driver for conflict in find_license_conflicts(drivers, pickup_at, return_at)]
