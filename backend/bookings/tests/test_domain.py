"""Tests for booking interval and amount helpers."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.utils import timezone

from bookings.domain import (
    ReservationInterval,
    intervals_overlap,
    next_booking_number,
    rental_amount,
    rental_days,
    validate_booking_dates,
)
from bookings.tests.fixtures import future

T0 = datetime(2030, 5, 1, 10, 0, tzinfo=dt_timezone.utc)


def hours(n: int) -> datetime:
    return T0 + timedelta(hours=n)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((0, 24), (12, 36), True),
        ((0, 24), (24, 48), False),  # touching edges
        ((24, 48), (0, 24), False),
        ((0, 48), (12, 24), True),  # containment
        ((0, 12), (36, 48), False),
    ],
)
def test_intervals_overlap_is_half_open(a, b, expected):
    assert intervals_overlap(hours(a[0]), hours(a[1]), hours(b[0]), hours(b[1])) is expected
    assert intervals_overlap(hours(b[0]), hours(b[1]), hours(a[0]), hours(a[1])) is expected


def test_reservation_interval_requires_positive_length():
    with pytest.raises(ValueError):
        ReservationInterval(resource_id=1, pickup_at=hours(5), return_at=hours(5))

    interval = ReservationInterval(resource_id=1, pickup_at=hours(0), return_at=hours(24))
    assert interval.overlaps(ReservationInterval(2, hours(23), hours(30)))
    assert not interval.overlaps(ReservationInterval(2, hours(24), hours(30)))


def test_rental_days_is_fractional_and_never_negative():
    assert rental_days(hours(0), hours(36)) == Decimal("1.5")
    assert rental_days(hours(0), hours(48)) == Decimal(2)
    assert rental_days(hours(10), hours(0)) == Decimal(0)


def test_rental_amount_rounds_half_up_to_cents():
    assert rental_amount(Decimal("333.33"), Decimal("1.5")) == Decimal("500.00")
    assert rental_amount(Decimal("0.05"), Decimal("0.5")) == Decimal("0.03")
    assert rental_amount("500.00", Decimal(2)) == Decimal("1000.00")


def test_validate_booking_dates_reports_every_problem():
    pickup = future(-1, hour=12)

    errors = validate_booking_dates(pickup, pickup - timedelta(hours=1))

    assert [(error.field, error.message) for error in errors] == [
        ("pickup_at", "Pickup date must be after today."),
        ("return_at", "Return date must be after pickup date."),
    ]


def test_validate_booking_dates_accepts_future_window():
    assert validate_booking_dates(future(2), future(4)) == []


def test_pickup_later_today_is_accepted_but_midnight_is_not():
    today = date(2030, 5, 1)
    midnight = timezone.make_aware(datetime(2030, 5, 1, 0, 0))
    afternoon = midnight + timedelta(hours=15)

    assert validate_booking_dates(afternoon, afternoon + timedelta(days=1), today=today) == []
    errors = validate_booking_dates(midnight, midnight + timedelta(days=1), today=today)
    assert [error.field for error in errors] == ["pickup_at"]


def test_validate_booking_dates_requires_both_dates():
    fields = [error.field for error in validate_booking_dates(None, None)]
    assert fields == ["pickup_at", "return_at"]


@pytest.mark.django_db
def test_next_booking_number_continues_daily_sequence(booking_item_factory):
    day = date(2030, 1, 15)
    assert next_booking_number(day) == "20300115-0001"

    booking_item_factory(booking_number="20300115-0007")
    booking_item_factory(booking_number="20300116-0009")

    assert next_booking_number(day) == "20300115-0008"


@pytest.mark.django_db
def test_next_booking_number_grows_past_four_digits(booking_item_factory):
    day = date(2030, 1, 15)
    booking_item_factory(booking_number="20300115-9999")
    assert next_booking_number(day) == "20300115-10000"

    booking_item_factory(booking_number="20300115-10000")
    booking_item_factory(booking_number="20300115-ADMIN")

    assert next_booking_number(day) == "20300115-10001"
