"""
Return reconciliation.

When a wallet-paid car comes back, the rental amount is settled against the
deposit already held:

* deposit covers the rental  -> the difference is refunded to the renter;
* rental exceeds the deposit -> the renter's wallet is charged the rest;
* the owner is always credited the full rental amount.

``initiate_return`` only quotes these figures so the renter can be warned
about a shortfall; ``commit_return`` moves the money and completes the item
in one unit of work. Cash and bank-transfer bookings settle offline: the item
just moves to pending_payment and waits for the owner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from core.errors import (
    FailureReason,
    InsufficientFundsError,
    InvalidTransitionError,
    RentalError,
)
from core.pricing import ZERO, quantize_money
from core.results import OperationResult
from core.uow import DjangoUnitOfWork
from wallets.ledger import credit, debit, ensure_wallet, get_wallet
from wallets.models import WalletEntry

from .domain import rental_amount, rental_days
from .models import BookingItem
from .state_machine import Action, apply_transition, authorize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settlement:
    rental_amount: Decimal
    deposit_amount: Decimal
    refund_amount: Decimal
    additional_charge: Decimal
    current_balance: Decimal
    can_process_return: bool


def compute_settlement(
    price_per_day,
    deposit,
    pickup_at: datetime,
    return_at: datetime,
    balance,
) -> Settlement:
    rental = rental_amount(price_per_day, rental_days(pickup_at, return_at))
    deposit = quantize_money(deposit)
    balance = quantize_money(balance)
    return Settlement(
        rental_amount=rental,
        deposit_amount=deposit,
        refund_amount=max(ZERO, deposit - rental),
        additional_charge=max(ZERO, rental - deposit),
        current_balance=balance,
        can_process_return=balance + deposit >= rental,
    )


@dataclass(frozen=True)
class ReturnQuote:
    ok: bool
    reason: Optional[FailureReason] = None
    message: str = ""
    requires_wallet_processing: bool = False
    rental_amount: Decimal = ZERO
    deposit_amount: Decimal = ZERO
    refund_amount: Decimal = ZERO
    additional_charge: Decimal = ZERO
    current_balance: Decimal = ZERO
    can_process_return: bool = False

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def from_settlement(cls, settlement: Settlement) -> "ReturnQuote":
        return cls(
            ok=True,
            requires_wallet_processing=True,
            rental_amount=settlement.rental_amount,
            deposit_amount=settlement.deposit_amount,
            refund_amount=settlement.refund_amount,
            additional_charge=settlement.additional_charge,
            current_balance=settlement.current_balance,
            can_process_return=settlement.can_process_return,
        )


def _check_returnable(item: BookingItem, renter_id: int) -> None:
    authorize(item, Action.SETTLE_RETURN, renter_id)
    if item.status != BookingItem.Status.IN_PROGRESS:
        raise InvalidTransitionError("Car is not currently rented.")


def initiate_return(item_id: int, renter_id: int) -> ReturnQuote:
    try:
        with DjangoUnitOfWork() as uow:
            item = uow.lock_booking_item(item_id)
            _check_returnable(item, renter_id)
            booking = item.booking
            if not booking.uses_wallet:
                apply_transition(item, Action.RETURN_OFFLINE, actor_id=renter_id)
                logger.info(
                    "bookings: item %s returned, awaiting offline payment",
                    item.pk,
                    extra={"booking_item_id": item.pk, "user_id": renter_id},
                )
                return ReturnQuote(ok=True, message="Car returned successfully.")
            settlement = compute_settlement(
                item.price_per_day,
                item.deposit,
                booking.pickup_at,
                booking.return_at,
                get_wallet(renter_id).balance,
            )
    except RentalError as exc:
        logger.warning(
            "bookings: return refused for item %s by user %s: %s",
            item_id,
            renter_id,
            exc.message,
            extra={"booking_item_id": item_id, "user_id": renter_id, "reason": exc.reason.value},
        )
        return ReturnQuote(ok=False, reason=exc.reason, message=exc.message)
    return ReturnQuote.from_settlement(settlement)


def commit_return(item_id: int, renter_id: int) -> OperationResult:
    """
    Settle a wallet-paid return and complete the item.

    Everything is re-validated under the item lock, and both wallets are locked
    before any balance is read, so the figures used are the ones committed.
    """
    owner_id = (
        BookingItem.objects.active()
        .filter(pk=item_id)
        .values_list("car__owner_id", flat=True)
        .first()
    )
    if owner_id is None:
        return OperationResult.failure(FailureReason.NOT_FOUND, f"Booking item {item_id} not found.")
    ensure_wallet(owner_id)

    try:
        with DjangoUnitOfWork() as uow:
            item = uow.lock_booking_item(item_id)
            _check_returnable(item, renter_id)
            booking = item.booking
            if not booking.uses_wallet:
                raise InvalidTransitionError(
                    "Only wallet-paid bookings are settled through the wallet."
                )
            renter_wallet = uow.lock_wallets([renter_id, item.car.owner_id])[renter_id]
            settlement = compute_settlement(
                item.price_per_day,
                item.deposit,
                booking.pickup_at,
                booking.return_at,
                renter_wallet.balance,
            )
            if not settlement.can_process_return:
                raise InsufficientFundsError(
                    f"Insufficient balance for additional charges. Required: "
                    f"{settlement.additional_charge}, available: {settlement.current_balance}."
                )

            note = f"Return of booking {booking.booking_number}"
            if settlement.additional_charge > ZERO:
                debit(
                    uow,
                    renter_id,
                    settlement.additional_charge,
                    kind=WalletEntry.Kind.OFFSET_FINAL_PAYMENT,
                    booking=booking,
                    note=note,
                )
            if settlement.refund_amount > ZERO:
                credit(
                    uow,
                    renter_id,
                    settlement.refund_amount,
                    kind=WalletEntry.Kind.RETURN_DEPOSIT,
                    booking=booking,
                    note=note,
                )
            if settlement.rental_amount > ZERO:
                credit(
                    uow,
                    item.car.owner_id,
                    settlement.rental_amount,
                    kind=WalletEntry.Kind.RECEIVE_PAYMENT,
                    booking=booking,
                    note=note,
                )
            apply_transition(item, Action.SETTLE_RETURN, actor_id=renter_id)
    except RentalError as exc:
        logger.warning(
            "bookings: return settlement failed for item %s by user %s: %s",
            item_id,
            renter_id,
            exc.message,
            extra={"booking_item_id": item_id, "user_id": renter_id, "reason": exc.reason.value},
        )
        return OperationResult.from_error(exc)
    except Exception:
        logger.exception("bookings: unexpected failure settling return of item %s", item_id)
        raise

    logger.info(
        "bookings: settled return of item %s: rental %s, refund %s, extra charge %s",
        item_id,
        settlement.rental_amount,
        settlement.refund_amount,
        settlement.additional_charge,
        extra={"booking_item_id": item_id, "user_id": renter_id},
    )
    return OperationResult.success("Car returned successfully.")
