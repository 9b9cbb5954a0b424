"""
Wallet ledger.

Every change of a wallet balance goes through ``debit`` or ``credit``, which
update the locked wallet row and append the matching signed ``WalletEntry`` in
the caller's unit of work. The active entries of a wallet therefore always sum
to its balance.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.db.models.functions import Coalesce

from core.errors import FieldError, InsufficientFundsError, InvalidAmountError, NotFoundError
from core.pricing import MAX_AMOUNT, ZERO, quantize_money
from core.uow import AbstractUnitOfWork

from .models import Wallet, WalletEntry

logger = logging.getLogger(__name__)

DEBIT_KINDS = frozenset(
    {
        WalletEntry.Kind.WITHDRAW,
        WalletEntry.Kind.PAY_DEPOSIT,
        WalletEntry.Kind.OFFSET_FINAL_PAYMENT,
    }
)
CREDIT_KINDS = frozenset(
    {
        WalletEntry.Kind.TOP_UP,
        WalletEntry.Kind.RETURN_DEPOSIT,
        WalletEntry.Kind.RECEIVE_PAYMENT,
    }
)


def get_balance(user_id: int) -> Decimal:
    """Return the current balance, 0 when the user has no wallet."""
    balance = (
        Wallet.objects.active().filter(user_id=user_id).values_list("balance", flat=True).first()
    )
    return balance if balance is not None else ZERO


def get_wallet(user_id: int) -> Wallet:
    wallet = Wallet.objects.active().filter(user_id=user_id).first()
    if wallet is None:
        raise NotFoundError("User wallet not found.")
    return wallet


def ensure_wallet(user_id: int) -> Wallet:
    """
    Return the user's wallet, creating an empty one on first use.

    Two concurrent callers may both miss the wallet and race on the insert;
    the loser re-reads the row the winner created.
    """
    wallet = Wallet.objects.active().filter(user_id=user_id).first()
    if wallet is not None:
        return wallet
    try:
        with transaction.atomic():
            wallet = Wallet.objects.create(user_id=user_id, balance=ZERO)
    except IntegrityError:
        wallet = Wallet.objects.active().filter(user_id=user_id).first()
        if wallet is None:
            raise
        logger.warning(
            "wallets: concurrent wallet creation for user %s, reusing existing wallet %s",
            user_id,
            wallet.pk,
            extra={"user_id": user_id, "wallet_id": wallet.pk},
        )
        return wallet
    logger.info("wallets: created wallet %s for user %s", wallet.pk, user_id)
    return wallet


def _positive_amount(amount) -> Decimal:
    try:
        value = quantize_money(amount)
    except ValueError as exc:
        raise InvalidAmountError([FieldError("amount", "Amount must be a number.")]) from exc
    if value <= ZERO:
        raise InvalidAmountError([FieldError("amount", "Amount must be greater than zero.")])
    if value >= MAX_AMOUNT:
        raise InvalidAmountError([FieldError("amount", "Amount is too large.")])
    return value


def debit(
    uow: AbstractUnitOfWork,
    user_id: int,
    amount,
    *,
    kind: str,
    booking=None,
    note: str = "",
) -> WalletEntry:
    """Take ``amount`` from the user's wallet; refuses to go below zero."""
    if kind not in DEBIT_KINDS:
        raise ValueError(f"{kind!r} is not a debit entry kind")
    value = _positive_amount(amount)
    wallet = uow.lock_wallet(user_id)
    if wallet.balance < value:
        raise InsufficientFundsError(
            f"Insufficient wallet balance. Available: {wallet.balance}, required: {value}."
        )
    wallet.balance = quantize_money(wallet.balance - value)
    wallet.save(update_fields=["balance", "updated_at"])
    entry = WalletEntry.objects.create(
        wallet=wallet,
        booking=booking,
        amount=-value,
        kind=kind,
        note=note,
    )
    logger.info(
        "wallets: debited %s from user %s (%s)",
        value,
        user_id,
        kind,
        extra={"user_id": user_id, "wallet_id": wallet.pk, "booking_id": getattr(booking, "pk", None)},
    )
    return entry


def credit(
    uow: AbstractUnitOfWork,
    user_id: int,
    amount,
    *,
    kind: str,
    booking=None,
    note: str = "",
) -> WalletEntry:
    """Add ``amount`` to the user's wallet."""
    if kind not in CREDIT_KINDS:
        raise ValueError(f"{kind!r} is not a credit entry kind")
    value = _positive_amount(amount)
    wallet = uow.lock_wallet(user_id)
    if wallet.balance + value >= MAX_AMOUNT:
        raise InvalidAmountError([FieldError("amount", "Resulting balance is too large.")])
    wallet.balance = quantize_money(wallet.balance + value)
    wallet.save(update_fields=["balance", "updated_at"])
    entry = WalletEntry.objects.create(
        wallet=wallet,
        booking=booking,
        amount=value,
        kind=kind,
        note=note,
    )
    logger.info(
        "wallets: credited %s to user %s (%s)",
        value,
        user_id,
        kind,
        extra={"user_id": user_id, "wallet_id": wallet.pk, "booking_id": getattr(booking, "pk", None)},
    )
    return entry


def entries_total(wallet: Wallet) -> Decimal:
    return WalletEntry.objects.active().filter(wallet=wallet).aggregate(
        total=Coalesce(Sum("amount"), ZERO)
    )["total"]


def is_reconciled(wallet: Wallet) -> bool:
    """True when the stored balance equals the sum of the wallet's entries."""
    return quantize_money(wallet.balance) == quantize_money(entries_total(wallet))
