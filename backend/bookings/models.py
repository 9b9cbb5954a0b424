"""Database models for car rental bookings."""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from cars.models import Car


class BookingQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_deleted=False)


class Booking(models.Model):
    """
    Booking header: one reservation window shared by one or more cars.

    Money and renter contact details are snapshotted at creation time so later
    changes to cars or profiles do not alter an existing booking.
    """

    class PaymentMethod(models.TextChoices):
        WALLET = "wallet", "Wallet"
        CASH = "cash", "Cash"
        BANK_TRANSFER = "bank_transfer", "Bank transfer"

    booking_number = models.CharField(max_length=32, unique=True)
    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_renter",
        on_delete=models.PROTECT,
    )
    pickup_at = models.DateTimeField()
    return_at = models.DateTimeField(help_text="Return time, must be after pickup_at.")
    total_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    total_deposit = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    renter_full_name = models.CharField(max_length=150)
    renter_email = models.EmailField()
    renter_phone = models.CharField(max_length=32, blank=True, default="")
    renter_license_number = models.CharField(max_length=64)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    is_deleted = models.BooleanField(default=False)

    objects = BookingQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["pickup_at", "return_at"], name="bookings_bo_pickup__5b1f0e_idx"),
            models.Index(fields=["renter", "created_at"], name="bookings_bo_renter__8c3a2d_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(pickup_at__lt=F("return_at")),
                name="booking_pickup_before_return",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking {self.booking_number}"

    @property
    def uses_wallet(self) -> bool:
        return self.payment_method == self.PaymentMethod.WALLET


class BookingItemQuerySet(models.QuerySet):
    def active(self):
        """Items that are neither soft-deleted themselves nor via their header."""
        return self.filter(is_deleted=False, booking__is_deleted=False)

    def blocking(self):
        return self.active().filter(status__in=BookingItem.BLOCKING_STATUSES)

    def overlapping(self, pickup_at: datetime, return_at: datetime):
        return self.filter(booking__pickup_at__lt=return_at, booking__return_at__gt=pickup_at)


class BookingItem(models.Model):
    """One car within a booking, with its own lifecycle status."""

    class Status(models.TextChoices):
        PENDING_DEPOSIT = "pending_deposit", "Pending deposit"
        CONFIRM = "confirm", "Confirmed"
        IN_PROGRESS = "in_progress", "In progress"
        PENDING_PAYMENT = "pending_payment", "Pending payment"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    # Statuses that keep the car unavailable for overlapping requests.
    BLOCKING_STATUSES = (
        Status.PENDING_DEPOSIT,
        Status.CONFIRM,
        Status.IN_PROGRESS,
        Status.PENDING_PAYMENT,
    )

    booking = models.ForeignKey(
        Booking,
        related_name="items",
        on_delete=models.CASCADE,
    )
    car = models.ForeignKey(
        Car,
        related_name="booking_items",
        on_delete=models.PROTECT,
    )
    price_per_day = models.DecimalField(max_digits=10, decimal_places=2)
    deposit = models.DecimalField(max_digits=10, decimal_places=2)
    driver_full_name = models.CharField(max_length=150)
    driver_license_number = models.CharField(max_length=64)
    driver_license_image = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING_DEPOSIT,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    is_deleted = models.BooleanField(default=False)

    objects = BookingItemQuerySet.as_manager()

    class Meta:
        ordering = ["booking_id", "id"]
        indexes = [
            models.Index(fields=["car", "status"], name="bookings_bo_car_id_4e7d91_idx"),
            models.Index(
                fields=["driver_license_number", "status"],
                name="bookings_bo_driver__a26c5f_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Item #{self.pk} of booking {self.booking_id} ({self.status})"

    @property
    def owner_id(self) -> int:
        return self.car.owner_id

    @property
    def renter_id(self) -> int:
        return self.booking.renter_id
