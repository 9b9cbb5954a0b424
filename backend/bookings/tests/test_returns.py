"""Tests for return settlement of wallet and offline bookings."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest import mock

import pytest

from bookings.models import Booking, BookingItem
from bookings.returns import commit_return, compute_settlement, initiate_return
from bookings.services import confirm_payment, confirm_pickup, create_booking
from bookings.tests.fixtures import future
from core.errors import ConcurrencyError, FailureReason
from wallets.ledger import get_balance, is_reconciled
from wallets.models import Wallet, WalletEntry

Status = BookingItem.Status
T0 = datetime(2030, 5, 1, 10, 0, tzinfo=dt_timezone.utc)


def test_settlement_refunds_unused_deposit():
    settlement = compute_settlement(
        Decimal("500.00"), Decimal("1000.00"), T0, T0 + timedelta(days=1), Decimal("0")
    )

    assert settlement.rental_amount == Decimal("500.00")
    assert settlement.refund_amount == Decimal("500.00")
    assert settlement.additional_charge == Decimal("0")
    assert settlement.can_process_return is True


def test_settlement_charges_shortfall_and_checks_balance():
    short = compute_settlement(
        Decimal("800.00"), Decimal("1000.00"), T0, T0 + timedelta(days=2), Decimal("599.99")
    )
    enough = compute_settlement(
        Decimal("800.00"), Decimal("1000.00"), T0, T0 + timedelta(days=2), Decimal("600.00")
    )

    assert short.rental_amount == Decimal("1600.00")
    assert short.additional_charge == Decimal("600.00")
    assert short.refund_amount == Decimal("0")
    assert short.can_process_return is False
    assert enough.can_process_return is True


@pytest.fixture
def rented_wallet_item(car_factory, renter_user, fund_wallet, booking_request_factory):
    """Create a wallet-paid booking for one car and pick it up."""

    def _rent(*, price: str, deposit: str, days: int, funds: str) -> BookingItem:
        car = car_factory(price=price, deposit=deposit)
        fund_wallet(renter_user, funds)
        pickup = future(3)
        request = booking_request_factory([car], pickup_at=pickup, return_at=pickup + timedelta(days=days))
        result = create_booking(request, payer_id=renter_user.pk, payment_method=Booking.PaymentMethod.WALLET)
        assert result, result.errors
        item = result.booking.items.get()
        assert confirm_pickup(item.pk, renter_user.pk)
        item.refresh_from_db()
        return item

    return _rent


@pytest.mark.django_db
def test_wallet_return_quote_mutates_nothing(rented_wallet_item, renter_user, owner_user):
    item = rented_wallet_item(price="500.00", deposit="1000.00", days=1, funds="1200.00")

    quote = initiate_return(item.pk, renter_user.pk)

    assert quote
    assert quote.requires_wallet_processing
    assert quote.rental_amount == Decimal("500.00")
    assert quote.refund_amount == Decimal("500.00")
    assert quote.current_balance == Decimal("200.00")
    assert quote.can_process_return
    item.refresh_from_db()
    assert item.status == Status.IN_PROGRESS
    assert get_balance(owner_user.pk) == Decimal("0")


@pytest.mark.django_db
def test_wallet_return_quote_needs_the_renter_wallet(rented_wallet_item, renter_user):
    item = rented_wallet_item(price="500.00", deposit="1000.00", days=1, funds="1000.00")
    Wallet.objects.filter(user=renter_user).update(is_deleted=True)

    quote = initiate_return(item.pk, renter_user.pk)

    assert not quote
    assert quote.reason is FailureReason.NOT_FOUND
    assert quote.message == "User wallet not found."
    item.refresh_from_db()
    assert item.status == Status.IN_PROGRESS


@pytest.mark.django_db
def test_commit_return_refunds_renter_and_pays_owner(rented_wallet_item, renter_user, owner_user):
    item = rented_wallet_item(price="500.00", deposit="1000.00", days=1, funds="1000.00")

    result = commit_return(item.pk, renter_user.pk)

    assert result, result.message
    item.refresh_from_db()
    assert item.status == Status.COMPLETED
    assert get_balance(renter_user.pk) == Decimal("500.00")
    assert get_balance(owner_user.pk) == Decimal("500.00")
    kinds = set(WalletEntry.objects.filter(booking=item.booking).values_list("kind", flat=True))
    assert kinds == {
        WalletEntry.Kind.PAY_DEPOSIT,
        WalletEntry.Kind.RETURN_DEPOSIT,
        WalletEntry.Kind.RECEIVE_PAYMENT,
    }
    for wallet in Wallet.objects.all():
        assert is_reconciled(wallet)


@pytest.mark.django_db
def test_commit_return_blocked_until_shortfall_is_covered(
    rented_wallet_item, renter_user, owner_user, fund_wallet
):
    item = rented_wallet_item(price="800.00", deposit="1000.00", days=2, funds="1000.00")
    assert get_balance(renter_user.pk) == Decimal("0.00")

    quote = initiate_return(item.pk, renter_user.pk)
    assert quote.additional_charge == Decimal("600.00")
    assert not quote.can_process_return

    blocked = commit_return(item.pk, renter_user.pk)
    assert blocked.reason is FailureReason.INSUFFICIENT_FUNDS
    item.refresh_from_db()
    assert item.status == Status.IN_PROGRESS
    assert get_balance(owner_user.pk) == Decimal("0")

    fund_wallet(renter_user, "600.00")
    assert commit_return(item.pk, renter_user.pk)

    assert get_balance(renter_user.pk) == Decimal("0.00")
    assert get_balance(owner_user.pk) == Decimal("1600.00")
    charge = WalletEntry.objects.get(kind=WalletEntry.Kind.OFFSET_FINAL_PAYMENT)
    assert charge.amount == Decimal("-600.00")


@pytest.mark.django_db
def test_failed_settlement_rolls_back_every_movement(rented_wallet_item, renter_user, owner_user):
    item = rented_wallet_item(price="500.00", deposit="1000.00", days=1, funds="1000.00")
    entries_before = WalletEntry.objects.count()

    with mock.patch(
        "bookings.returns.apply_transition", side_effect=ConcurrencyError("Lost the item lock.")
    ):
        result = commit_return(item.pk, renter_user.pk)

    assert result.reason is FailureReason.CONCURRENCY
    assert WalletEntry.objects.count() == entries_before
    assert get_balance(renter_user.pk) == Decimal("0.00")
    assert get_balance(owner_user.pk) == Decimal("0")


@pytest.mark.django_db
def test_offline_return_waits_for_owner(booking_item_factory, renter_user, owner_user):
    item = booking_item_factory(status=Status.IN_PROGRESS, payment_method=Booking.PaymentMethod.CASH)

    quote = initiate_return(item.pk, renter_user.pk)

    assert quote
    assert not quote.requires_wallet_processing
    item.refresh_from_db()
    assert item.status == Status.PENDING_PAYMENT
    assert commit_return(item.pk, renter_user.pk).reason is FailureReason.INVALID_STATE

    assert confirm_payment(item.pk, owner_user.pk)
    item.refresh_from_db()
    assert item.status == Status.COMPLETED
    assert not WalletEntry.objects.filter(booking=item.booking).exists()


@pytest.mark.django_db
def test_return_is_refused_for_other_users_and_wrong_states(
    booking_item_factory, renter_user, other_user
):
    in_progress = booking_item_factory(status=Status.IN_PROGRESS)
    confirmed = booking_item_factory(status=Status.CONFIRM, pickup_at=future(30))

    stranger = initiate_return(in_progress.pk, other_user.pk)
    assert stranger.reason is FailureReason.NOT_PERMITTED

    not_rented = initiate_return(confirmed.pk, renter_user.pk)
    assert not_rented.reason is FailureReason.INVALID_STATE
    assert not_rented.message == "Car is not currently rented."

    assert commit_return(987654, renter_user.pk).reason is FailureReason.NOT_FOUND
