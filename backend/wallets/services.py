"""Wallet operations exposed to the rest of the platform."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.core.paginator import Paginator
from django.utils import timezone

from core.errors import FieldError, InsufficientFundsError, RentalError, ValidationError
from core.pricing import ZERO
from core.results import OperationResult
from core.uow import DjangoUnitOfWork

from .ledger import credit, debit, ensure_wallet, get_balance
from .models import WalletEntry

logger = logging.getLogger(__name__)

WITHDRAW_ALL = "ALL"
DEFAULT_STATEMENT_DAYS = 30


def _is_withdraw_all(amount) -> bool:
    return isinstance(amount, str) and amount.strip().upper() == WITHDRAW_ALL


def top_up(user_id: int, amount, note: str | None = None) -> OperationResult:
    try:
        ensure_wallet(user_id)
        with DjangoUnitOfWork() as uow:
            entry = credit(
                uow,
                user_id,
                amount,
                kind=WalletEntry.Kind.TOP_UP,
                note=note or "Top-up",
            )
    except RentalError as exc:
        logger.warning(
            "wallets: top-up rejected for user %s: %s",
            user_id,
            exc.message,
            extra={"user_id": user_id, "reason": exc.reason.value},
        )
        return OperationResult.from_error(exc)
    return OperationResult.success(f"Topped up {entry.amount}.")


def withdraw(user_id: int, amount, note: str | None = None) -> OperationResult:
    """
    Withdraw ``amount`` from the wallet.

    ``WITHDRAW_ALL`` withdraws whatever the balance is once the wallet row is
    locked, so a concurrent top-up or payment cannot make it overdraw.
    """
    try:
        with DjangoUnitOfWork() as uow:
            wallet = uow.lock_wallet(user_id)
            if _is_withdraw_all(amount):
                amount = wallet.balance
                if amount <= ZERO:
                    raise InsufficientFundsError("There is nothing to withdraw.")
            entry = debit(
                uow,
                user_id,
                amount,
                kind=WalletEntry.Kind.WITHDRAW,
                note=note or "Withdraw",
            )
    except RentalError as exc:
        logger.warning(
            "wallets: withdraw rejected for user %s: %s",
            user_id,
            exc.message,
            extra={"user_id": user_id, "reason": exc.reason.value},
        )
        return OperationResult.from_error(exc)
    return OperationResult.success(f"Withdrew {-entry.amount}.")


@dataclass(frozen=True)
class WalletStatement:
    balance: Decimal
    start: datetime
    end: datetime
    entries: list
    total_count: int
    page: int
    page_size: int
    num_pages: int


def wallet_statement(
    user_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    page_size: int = 20,
) -> WalletStatement:
    """Page through a user's wallet entries, newest first."""
    end = end or timezone.now()
    start = start or end - timedelta(days=DEFAULT_STATEMENT_DAYS)
    if start > end:
        raise ValidationError([FieldError("start", "Start date must be before end date.")])

    max_page_size = int(getattr(settings, "WALLET_STATEMENT_MAX_PAGE_SIZE", 100))
    page_size = min(max(int(page_size), 1), max_page_size)

    queryset = (
        WalletEntry.objects.active()
        .for_user(user_id)
        .filter(created_at__gte=start, created_at__lte=end)
        .select_related("booking")
        .order_by("-created_at", "-id")
    )
    paginator = Paginator(queryset, page_size)
    page_obj = paginator.get_page(max(int(page), 1))
    return WalletStatement(
        balance=get_balance(user_id),
        start=start,
        end=end,
        entries=list(page_obj.object_list),
        total_count=paginator.count,
        page=page_obj.number,
        page_size=page_size,
        num_pages=paginator.num_pages,
    )
