"""Shared fixtures for booking, wallet and car tests."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone

from bookings.models import Booking, BookingItem
from bookings.services import BookingItemRequest, BookingRequest, RenterInfo
from cars.models import Car
from wallets.services import top_up

User = get_user_model()


def future(days: int, hour: int = 10) -> datetime:
    """An aware datetime ``days`` days from now at ``hour`` o'clock local time."""
    moment = timezone.localtime() + timedelta(days=days)
    return moment.replace(hour=hour, minute=0, second=0, microsecond=0)


@pytest.fixture
def user_factory() -> Callable[..., User]:
    counter = itertools.count(1)

    def _create_user(*, username: str | None = None, **extra_fields) -> User:
        number = next(counter)
        username = username or f"user{number}"
        extra_fields.setdefault("email", f"{username}@example.com")
        return User.objects.create_user(username=username, password="testpass", **extra_fields)

    return _create_user


@pytest.fixture
def owner_user(user_factory):
    return user_factory(username="owner", first_name="Olivia", last_name="Owner")


@pytest.fixture
def renter_user(user_factory):
    return user_factory(
        username="renter",
        first_name="Riley",
        last_name="Renter",
        license_number="DL-RENTER-01",
        phone="+15550001111",
    )


@pytest.fixture
def other_user(user_factory):
    return user_factory(username="other", license_number="DL-OTHER-01")


@pytest.fixture
def car_factory(owner_user) -> Callable[..., Car]:
    plates = itertools.count(1)

    def _create_car(
        *,
        owner=None,
        brand: str = "Toyota",
        model: str = "Vios",
        price: str = "500.00",
        deposit: str = "1000.00",
        status: str = Car.Status.AVAILABLE,
        license_plate: str | None = None,
    ) -> Car:
        return Car.objects.create(
            owner=owner or owner_user,
            brand=brand,
            model=model,
            base_price_per_day=Decimal(price),
            required_deposit=Decimal(deposit),
            status=status,
            license_plate=license_plate or f"30A-{next(plates):05d}",
        )

    return _create_car


@pytest.fixture
def car(car_factory):
    return car_factory()


@pytest.fixture
def fund_wallet() -> Callable:
    def _fund(user, amount) -> Decimal:
        result = top_up(user.pk, Decimal(amount))
        assert result, result.message
        return Decimal(amount)

    return _fund


@pytest.fixture
def booking_item_factory(car, renter_user) -> Callable[..., BookingItem]:
    """Insert a booking item directly, bypassing the booking services."""
    numbers = itertools.count(1)

    def _create_item(
        *,
        car_override: Car | None = None,
        renter=None,
        pickup_at: datetime | None = None,
        return_at: datetime | None = None,
        status: str = BookingItem.Status.CONFIRM,
        payment_method: str = Booking.PaymentMethod.CASH,
        license_number: str = "DL-EXISTING-01",
        booking_number: str | None = None,
        is_deleted: bool = False,
        booking_deleted: bool = False,
    ) -> BookingItem:
        selected_car = car_override or car
        renter = renter or renter_user
        pickup_at = pickup_at or future(5)
        return_at = return_at or pickup_at + timedelta(days=2)
        booking = Booking.objects.create(
            booking_number=booking_number or f"TEST-{next(numbers):04d}",
            renter=renter,
            pickup_at=pickup_at,
            return_at=return_at,
            total_deposit=selected_car.required_deposit,
            payment_method=payment_method,
            renter_full_name=renter.full_name,
            renter_email=renter.email,
            renter_license_number=renter.license_number or "DL-UNKNOWN",
            is_deleted=booking_deleted,
        )
        return BookingItem.objects.create(
            booking=booking,
            car=selected_car,
            price_per_day=selected_car.base_price_per_day,
            deposit=selected_car.required_deposit,
            driver_full_name=renter.full_name,
            driver_license_number=license_number,
            status=status,
            is_deleted=is_deleted,
        )

    return _create_item


@pytest.fixture
def booking_request_factory(renter_user) -> Callable[..., BookingRequest]:
    def _build(
        cars,
        *,
        pickup_at: datetime | None = None,
        return_at: datetime | None = None,
        licenses: list[str] | None = None,
        renter: RenterInfo | None = None,
    ) -> BookingRequest:
        pickup_at = pickup_at or future(3)
        return_at = return_at or pickup_at + timedelta(days=2)
        licenses = licenses or [f"DL-DRIVER-{index:02d}" for index in range(len(cars))]
        items = [
            BookingItemRequest(
                car_id=car.pk,
                driver_full_name=f"Driver {index}",
                driver_license_number=licenses[index],
            )
            for index, car in enumerate(cars)
        ]
        renter = renter or RenterInfo(
            full_name=renter_user.full_name,
            email=renter_user.email,
            license_number=renter_user.license_number,
            phone=renter_user.phone,
        )
        return BookingRequest(pickup_at=pickup_at, return_at=return_at, renter=renter, items=items)

    return _build
