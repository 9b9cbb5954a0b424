"""
Unit of Work

Supplies the atomic boundary for every multi-step mutation of the booking core
(booking creation with deposit payment, cancellation with refund, return
settlement) and the row-lock capabilities those sequences need.

Usage:
    with DjangoUnitOfWork() as uow:
        wallets = uow.lock_wallets([renter_id, owner_id])
        ...
    # committed here; any exception inside the block rolls everything back
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable

from django.apps import apps
from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, OperationalError, connections, transaction

from .errors import ConcurrencyError, NotFoundError

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Begin on enter; commit on clean exit, roll back on any exception."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        """Commit the transaction"""

    @abstractmethod
    def rollback(self):
        """Roll the transaction back"""

    @abstractmethod
    def lock_wallets(self, user_ids: Iterable[int]) -> dict:
        """Exclusively lock the wallets of the given users until the scope ends."""

    @abstractmethod
    def lock_booking_item(self, item_id: int):
        """Exclusively lock one booking item row."""

    @abstractmethod
    def lock_cars(self, car_ids: Iterable[int]) -> dict:
        """Exclusively lock car rows so availability check and insert serialize."""

    @abstractmethod
    def lock_licenses(self, license_numbers: Iterable[str]) -> None:
        """Serialize concurrent bookings that reuse the same driver licences."""


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Unit of Work on top of ``django.db.transaction.atomic``.

    Wallet rows locked through ``lock_wallets`` are cached for the lifetime of
    the scope, so later debits and credits mutate the very rows that hold the
    lock. Lock every wallet that participates in the operation with a single
    ``lock_wallets`` call up front: rows are locked in ascending primary key
    order, which keeps concurrent multi-wallet operations deadlock free.
    """

    def __init__(self, using: str = DEFAULT_DB_ALIAS):
        self.using = using
        self._atomic = None
        self._wallets: dict[int, object] = {}
        self._rollback_only = False
        self._lock_timeout_set = False

    def __enter__(self):
        self._atomic = transaction.atomic(using=self.using)
        self._atomic.__enter__()
        self._wallets = {}
        self._rollback_only = False
        self._lock_timeout_set = False
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self._wallets = {}
            if self._atomic is not None:
                self._atomic.__exit__(exc_type, exc_val, exc_tb)
                self._atomic = None

    def commit(self):
        if self._rollback_only:
            logger.info("unit_of_work: scope marked for rollback, nothing committed")
            return
        logger.debug("unit_of_work: committing", extra={"locked_wallets": len(self._wallets)})

    def rollback(self):
        if not self._rollback_only:
            logger.warning(
                "unit_of_work: rolling back", extra={"locked_wallets": len(self._wallets)}
            )
        self._rollback_only = True
        transaction.set_rollback(True, using=self.using)

    def on_commit(self, func: Callable[[], None]) -> None:
        """Run ``func`` only once the surrounding transaction has committed."""
        transaction.on_commit(func, using=self.using)

    @property
    def _vendor(self) -> str:
        return connections[self.using].vendor

    def _ensure_lock_timeout(self) -> None:
        if self._lock_timeout_set or self._vendor != "postgresql":
            return
        timeout_ms = int(getattr(settings, "WALLET_LOCK_TIMEOUT_MS", 5000))
        with connections[self.using].cursor() as cursor:
            cursor.execute(f"SET LOCAL lock_timeout = '{timeout_ms}ms'")
        self._lock_timeout_set = True

    def lock_wallets(self, user_ids: Iterable[int]) -> dict:
        user_ids = list(dict.fromkeys(user_ids))
        wanted = sorted(user_id for user_id in user_ids if user_id not in self._wallets)
        if wanted:
            Wallet = apps.get_model("wallets", "Wallet")
            self._ensure_lock_timeout()
            try:
                rows = list(
                    Wallet.objects.using(self.using)
                    .active()
                    .select_for_update()
                    .filter(user_id__in=wanted)
                    .order_by("pk")
                )
            except OperationalError as exc:
                raise ConcurrencyError(f"Could not lock wallets for users {wanted}.") from exc
            for wallet in rows:
                self._wallets[wallet.user_id] = wallet

        missing = [user_id for user_id in user_ids if user_id not in self._wallets]
        if missing:
            raise NotFoundError(f"Wallet not found for user(s) {missing}.")
        return {user_id: self._wallets[user_id] for user_id in user_ids}

    def lock_wallet(self, user_id: int):
        return self.lock_wallets([user_id])[user_id]

    def lock_booking_item(self, item_id: int):
        BookingItem = apps.get_model("bookings", "BookingItem")
        self._ensure_lock_timeout()
        try:
            return (
                BookingItem.objects.using(self.using)
                .active()
                .select_for_update(of=("self",))
                .select_related("booking", "car")
                .get(pk=item_id)
            )
        except BookingItem.DoesNotExist as exc:
            raise NotFoundError(f"Booking item {item_id} not found.") from exc
        except OperationalError as exc:
            raise ConcurrencyError(f"Could not lock booking item {item_id}.") from exc

    def lock_cars(self, car_ids: Iterable[int]) -> dict:
        Car = apps.get_model("cars", "Car")
        self._ensure_lock_timeout()
        try:
            rows = list(
                Car.objects.using(self.using)
                .select_for_update()
                .filter(pk__in=sorted(set(car_ids)))
                .order_by("pk")
            )
        except OperationalError as exc:
            raise ConcurrencyError("Could not lock the requested cars.") from exc
        return {car.pk: car for car in rows}

    def lock_licenses(self, license_numbers: Iterable[str]) -> None:
        # Licences have no row of their own; PostgreSQL advisory transaction
        # locks stand in for one and are released at commit/rollback.
        if self._vendor != "postgresql":
            return
        self._ensure_lock_timeout()
        with connections[self.using].cursor() as cursor:
            for number in sorted(set(license_numbers)):
                try:
                    cursor.execute(
                        "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
                        [f"license:{number}"],
                    )
                except OperationalError as exc:
                    raise ConcurrencyError(f"Could not lock licence {number}.") from exc
