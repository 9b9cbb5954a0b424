"""
Booking services.

``create_booking`` turns a validated request into a booking header, one item
per car and (for wallet payments) the deposit debit, all in one unit of work.
The availability and licence checks run again under row and advisory locks
inside that same transaction, so two requests for the same car or licence
cannot both pass the check and both insert.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from cars.catalog import get_cars
from core.errors import (
    ConcurrencyError,
    FailureReason,
    FieldError,
    RentalError,
    ValidationError,
)
from core.pricing import ZERO, quantize_money
from core.results import OperationResult, ValidationResult
from core.uow import DjangoUnitOfWork
from wallets.ledger import credit, debit, ensure_wallet
from wallets.models import WalletEntry

from .conflicts import (
    DriverLicense,
    LicenseConflictReason,
    find_license_conflicts,
    find_unavailable_car_ids,
)
from .domain import next_booking_number, rental_amount, rental_days, validate_booking_dates
from .models import Booking, BookingItem
from .state_machine import Action, apply_transition, initial_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenterInfo:
    full_name: str
    email: str
    license_number: str
    phone: str = ""


@dataclass(frozen=True)
class BookingItemRequest:
    car_id: int
    driver_full_name: str = ""
    driver_license_number: str = ""
    driver_license_image: str = ""
    same_as_renter: bool = False


@dataclass(frozen=True)
class BookingRequest:
    pickup_at: Optional[datetime]
    return_at: Optional[datetime]
    renter: RenterInfo
    items: list[BookingItemRequest] = field(default_factory=list)


@dataclass
class BookingResult:
    """Created booking, or every error that prevented it."""

    booking: Optional[Booking] = None
    errors: list[FieldError] = field(default_factory=list)
    reason: Optional[FailureReason] = None

    @property
    def ok(self) -> bool:
        return self.booking is not None and not self.errors

    def __bool__(self) -> bool:
        return self.ok

    @property
    def messages(self) -> list[str]:
        return [error.message for error in self.errors]


@dataclass(frozen=True)
class _Driver:
    index: int
    car_id: int
    full_name: str
    license_number: str
    license_image: str


def _resolve_drivers(request: BookingRequest) -> list[_Driver]:
    drivers = []
    for index, item in enumerate(request.items):
        if item.same_as_renter:
            full_name, license_number = request.renter.full_name, request.renter.license_number
        else:
            full_name, license_number = item.driver_full_name, item.driver_license_number
        drivers.append(
            _Driver(
                index=index,
                car_id=item.car_id,
                full_name=(full_name or "").strip(),
                license_number=(license_number or "").strip(),
                license_image=item.driver_license_image or "",
            )
        )
    return drivers


def _validate_request(request: BookingRequest, payment_method, drivers, cars) -> ValidationResult:
    result = ValidationResult()
    result.extend(validate_booking_dates(request.pickup_at, request.return_at))

    if payment_method not in Booking.PaymentMethod.values:
        result.add_error("payment_method", "Unsupported payment method.")

    renter = request.renter
    if not (renter.full_name or "").strip():
        result.add_error("renter.full_name", "Full name is required.")
    if not (renter.email or "").strip():
        result.add_error("renter.email", "Email is required.")
    if not (renter.license_number or "").strip():
        result.add_error("renter.license_number", "License number is required.")

    if not drivers:
        result.add_error("items", "Select at least one car.")

    seen_cars: set[int] = set()
    for driver in drivers:
        car = cars.get(driver.car_id)
        prefix = f"items[{driver.index}]"
        if driver.car_id in seen_cars:
            result.add_error(f"{prefix}.car_id", "The same car cannot be booked twice.")
        seen_cars.add(driver.car_id)
        if car is None:
            result.add_error(f"{prefix}.car_id", "Car not found.")
            continue
        if not car.is_available:
            result.add_error(f"{prefix}.car_id", f"Car {car.display_name} is not available for rent.")
        if not driver.full_name:
            result.add_error(
                f"{prefix}.driver_full_name",
                f"Driver's full name for {car.display_name} is required.",
            )
        if not driver.license_number:
            result.add_error(
                f"{prefix}.driver_license_number",
                f"Driver's license number for {car.display_name} is required.",
            )
    return result


def _conflict_errors(drivers, cars, pickup_at, return_at) -> list[FieldError]:
    errors: list[FieldError] = []
    for car_id in sorted(find_unavailable_car_ids(cars.keys(), pickup_at, return_at)):
        car = cars[car_id]
        errors.append(
            FieldError(
                "car_availability",
                f"Car {car.brand} {car.model} (License plate: {car.license_plate}) "
                "is already booked during this period.",
            )
        )

    licenses = [
        DriverLicense(driver.license_number, car_id=driver.car_id, full_name=driver.full_name)
        for driver in drivers
    ]
    for conflict in find_license_conflicts(licenses, pickup_at, return_at):
        driver = drivers[conflict.index]
        car = cars.get(driver.car_id)
        car_name = car.display_name if car else str(driver.car_id)
        if conflict.reason is LicenseConflictReason.DUPLICATE_IN_REQUEST:
            message = (
                f"License number {driver.license_number} is used for more than one car "
                "in this booking."
            )
        else:
            message = (
                f"License number {driver.license_number} is already being used for another "
                f"booking during this period (car: {car_name})."
            )
        errors.append(FieldError(f"items[{driver.index}].driver_license_number", message))
    return errors


def _insert_header(**fields) -> Booking:
    """Insert the header, retrying when another transaction took the same number."""
    attempts = int(getattr(settings, "BOOKING_NUMBER_MAX_ATTEMPTS", 5))
    for attempt in range(1, attempts + 1):
        number = next_booking_number()
        try:
            with transaction.atomic():
                return Booking.objects.create(booking_number=number, **fields)
        except IntegrityError:
            logger.warning(
                "bookings: booking number %s already taken (attempt %s/%s)",
                number,
                attempt,
                attempts,
            )
    raise ConcurrencyError("Could not allocate a booking number, please try again.")


def create_booking(request: BookingRequest, *, payer_id: int, payment_method: str) -> BookingResult:
    """
    Validate and persist a booking for ``payer_id``.

    Field validation, car availability, licence conflicts and the wallet
    balance are all checked before anything is written; the result carries
    every error found. Nothing is persisted unless the whole booking is.
    """
    drivers = _resolve_drivers(request)
    car_ids = [driver.car_id for driver in drivers]
    cars = get_cars(car_ids)
    validation = _validate_request(request, payment_method, drivers, cars)
    uses_wallet = payment_method == Booking.PaymentMethod.WALLET
    if uses_wallet:
        ensure_wallet(payer_id)

    try:
        with DjangoUnitOfWork() as uow:
            locked_cars = uow.lock_cars(cars.keys())
            uow.lock_licenses(driver.license_number for driver in drivers if driver.license_number)

            errors = list(validation.errors)
            conflicts: list[FieldError] = []
            days = ZERO
            if request.pickup_at is not None and request.return_at is not None:
                conflicts = _conflict_errors(drivers, cars, request.pickup_at, request.return_at)
                days = rental_days(request.pickup_at, request.return_at)
            errors.extend(conflicts)

            total_amount = quantize_money(
                sum(
                    (rental_amount(car.base_price_per_day, days) for car in locked_cars.values()),
                    ZERO,
                )
            )
            total_deposit = quantize_money(
                sum((car.required_deposit for car in locked_cars.values()), ZERO)
            )

            if uses_wallet:
                wallet = uow.lock_wallet(payer_id)
                if wallet.balance < total_deposit:
                    shortage = quantize_money(total_deposit - wallet.balance)
                    errors.append(
                        FieldError(
                            "payment_method",
                            f"Insufficient wallet balance. You need an additional {shortage} "
                            "to complete the payment.",
                        )
                    )

            if errors:
                if not validation.is_valid:
                    reason = FailureReason.VALIDATION
                elif conflicts:
                    reason = FailureReason.CONFLICT
                else:
                    reason = FailureReason.INSUFFICIENT_FUNDS
                raise ValidationError(errors, reason=reason)

            booking = _insert_header(
                renter_id=payer_id,
                pickup_at=request.pickup_at,
                return_at=request.return_at,
                total_amount=total_amount,
                total_deposit=total_deposit,
                payment_method=payment_method,
                renter_full_name=request.renter.full_name.strip(),
                renter_email=request.renter.email.strip(),
                renter_phone=(request.renter.phone or "").strip(),
                renter_license_number=request.renter.license_number.strip(),
            )
            status = initial_status(payment_method)
            BookingItem.objects.bulk_create(
                [
                    BookingItem(
                        booking=booking,
                        car=locked_cars[driver.car_id],
                        price_per_day=locked_cars[driver.car_id].base_price_per_day,
                        deposit=locked_cars[driver.car_id].required_deposit,
                        driver_full_name=driver.full_name,
                        driver_license_number=driver.license_number,
                        driver_license_image=driver.license_image,
                        status=status,
                    )
                    for driver in drivers
                ]
            )
            if uses_wallet and total_deposit > ZERO:
                debit(
                    uow,
                    payer_id,
                    total_deposit,
                    kind=WalletEntry.Kind.PAY_DEPOSIT,
                    booking=booking,
                    note=f"Deposit for booking {booking.booking_number}",
                )
    except ValidationError as exc:
        logger.info(
            "bookings: booking request rejected for user %s (%s errors)",
            payer_id,
            len(exc.errors),
            extra={"user_id": payer_id, "reason": exc.reason.value},
        )
        return BookingResult(errors=exc.errors, reason=exc.reason)
    except RentalError as exc:
        logger.warning(
            "bookings: booking request failed for user %s: %s",
            payer_id,
            exc.message,
            extra={"user_id": payer_id, "reason": exc.reason.value},
        )
        return BookingResult(errors=[FieldError("non_field_errors", exc.message)], reason=exc.reason)
    except Exception:
        logger.exception("bookings: unexpected failure creating booking for user %s", payer_id)
        raise

    logger.info(
        "bookings: created booking %s with %s item(s), deposit %s via %s",
        booking.booking_number,
        len(drivers),
        total_deposit,
        payment_method,
        extra={"booking_id": booking.pk, "user_id": payer_id},
    )
    return BookingResult(booking=booking)


def _run_transition(item_id: int, user_id: int, action: Action) -> OperationResult:
    try:
        with DjangoUnitOfWork() as uow:
            item = uow.lock_booking_item(item_id)
            apply_transition(item, action, actor_id=user_id)
    except RentalError as exc:
        logger.warning(
            "bookings: %s refused for item %s by user %s: %s",
            action.value,
            item_id,
            user_id,
            exc.message,
            extra={"booking_item_id": item_id, "user_id": user_id, "reason": exc.reason.value},
        )
        return OperationResult.from_error(exc)
    return OperationResult.success()


def confirm_deposit(item_id: int, owner_id: int) -> OperationResult:
    """Owner acknowledges the cash or bank-transfer deposit."""
    return _run_transition(item_id, owner_id, Action.CONFIRM_DEPOSIT)


def confirm_pickup(item_id: int, renter_id: int) -> OperationResult:
    return _run_transition(item_id, renter_id, Action.CONFIRM_PICKUP)


def confirm_payment(item_id: int, owner_id: int) -> OperationResult:
    """Owner acknowledges the offline final payment of a returned car."""
    return _run_transition(item_id, owner_id, Action.CONFIRM_PAYMENT)


def cancel_booking_item(item_id: int, renter_id: int) -> OperationResult:
    """
    Cancel one car of a booking before pickup.

    Wallet bookings get the item deposit back in the same transaction as the
    status change.
    """
    refunded = ZERO
    try:
        with DjangoUnitOfWork() as uow:
            item = uow.lock_booking_item(item_id)
            apply_transition(item, Action.CANCEL, actor_id=renter_id)
            booking = item.booking
            if booking.uses_wallet and item.deposit > ZERO:
                uow.lock_wallet(renter_id)
                entry = credit(
                    uow,
                    renter_id,
                    item.deposit,
                    kind=WalletEntry.Kind.RETURN_DEPOSIT,
                    booking=booking,
                    note=f"Deposit refund for booking {booking.booking_number}",
                )
                refunded = Decimal(entry.amount)
    except RentalError as exc:
        logger.warning(
            "bookings: cancel refused for item %s by user %s: %s",
            item_id,
            renter_id,
            exc.message,
            extra={"booking_item_id": item_id, "user_id": renter_id, "reason": exc.reason.value},
        )
        return OperationResult.from_error(exc)

    logger.info(
        "bookings: cancelled item %s, refunded %s",
        item_id,
        refunded,
        extra={"booking_item_id": item_id, "user_id": renter_id},
    )
    return OperationResult.success(f"Booking item cancelled. Refunded {refunded}.")
