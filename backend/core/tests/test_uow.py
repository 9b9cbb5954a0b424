from decimal import Decimal
from unittest import mock

import pytest
from django.db import OperationalError

from cars.models import Car
from core.errors import ConcurrencyError, NotFoundError
from core.uow import DjangoUnitOfWork
from wallets.models import Wallet, WalletQuerySet

pytestmark = pytest.mark.django_db


def _new_car(owner, plate):
    return Car.objects.create(
        owner=owner,
        license_plate=plate,
        brand="Kia",
        model="Morning",
        base_price_per_day=Decimal("300.00"),
        required_deposit=Decimal("500.00"),
    )


def test_clean_exit_commits(owner_user):
    with DjangoUnitOfWork():
        _new_car(owner_user, "UOW-1")

    assert Car.objects.filter(license_plate="UOW-1").exists()


def test_exception_rolls_back_and_propagates(owner_user):
    with pytest.raises(RuntimeError):
        with DjangoUnitOfWork():
            _new_car(owner_user, "UOW-2")
            raise RuntimeError("boom")

    assert not Car.objects.filter(license_plate="UOW-2").exists()


def test_explicit_rollback_discards_work(owner_user):
    with DjangoUnitOfWork() as uow:
        _new_car(owner_user, "UOW-3")
        uow.rollback()

    assert not Car.objects.filter(license_plate="UOW-3").exists()


def test_lock_wallets_returns_wallets_by_user(owner_user, renter_user):
    with DjangoUnitOfWork() as uow:
        wallets = uow.lock_wallets([renter_user.pk, owner_user.pk])
        again = uow.lock_wallet(renter_user.pk)

    assert set(wallets) == {renter_user.pk, owner_user.pk}
    assert wallets[owner_user.pk].user_id == owner_user.pk
    # Locked rows are reused for the rest of the scope.
    assert again is wallets[renter_user.pk]


def test_lock_wallets_ignores_soft_deleted_wallet(renter_user):
    Wallet.objects.filter(user=renter_user).update(is_deleted=True)

    with pytest.raises(NotFoundError):
        with DjangoUnitOfWork() as uow:
            uow.lock_wallet(renter_user.pk)


def test_lock_timeout_surfaces_as_concurrency_error(renter_user):
    with mock.patch.object(
        WalletQuerySet,
        "select_for_update",
        side_effect=OperationalError("canceling statement due to lock timeout"),
    ):
        with pytest.raises(ConcurrencyError):
            with DjangoUnitOfWork() as uow:
                uow.lock_wallet(renter_user.pk)


def test_lock_booking_item_missing_raises_not_found():
    with pytest.raises(NotFoundError):
        with DjangoUnitOfWork() as uow:
            uow.lock_booking_item(987654)


def test_lock_cars_returns_existing_rows_only(car):
    with DjangoUnitOfWork() as uow:
        locked = uow.lock_cars([car.pk, 987654])
        uow.lock_licenses(["DL-1", "DL-2"])

    assert list(locked) == [car.pk]


def test_on_commit_runs_after_commit(django_capture_on_commit_callbacks):
    calls = []
    with django_capture_on_commit_callbacks(execute=True):
        with DjangoUnitOfWork() as uow:
            uow.on_commit(lambda: calls.append("sent"))
            assert calls == []

    assert calls == ["sent"]
