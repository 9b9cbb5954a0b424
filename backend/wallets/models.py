"""Wallet balances and their append-only ledger."""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q


class WalletQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_deleted=False)


class Wallet(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    balance = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    is_deleted = models.BooleanField(default=False)

    objects = WalletQuerySet.as_manager()

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0),
                name="wallet_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Wallet of {self.user_id}: {self.balance}"


class WalletEntryQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_deleted=False)

    def for_user(self, user_id: int):
        return self.filter(wallet__user_id=user_id)


class WalletEntry(models.Model):
    """
    One signed movement of money on a wallet.

    Debits are stored negative, credits positive, so the active entries of a
    wallet always sum to its balance. Rows are never updated or deleted.
    """

    class Kind(models.TextChoices):
        TOP_UP = "top_up", "Top-up"
        WITHDRAW = "withdraw", "Withdraw"
        PAY_DEPOSIT = "pay_deposit", "Pay deposit"
        RETURN_DEPOSIT = "return_deposit", "Return deposit"
        OFFSET_FINAL_PAYMENT = "offset_final_payment", "Offset final payment"
        RECEIVE_PAYMENT = "receive_payment", "Receive payment"

    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name="entries",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="wallet_entries",
        null=True,
        blank=True,
    )
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    kind = models.CharField(max_length=32, choices=Kind.choices)
    note = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    is_deleted = models.BooleanField(default=False)

    objects = WalletEntryQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["wallet", "created_at"], name="wallets_wal_wallet__3f9b2e_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.kind} {self.amount} on wallet {self.wallet_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise RuntimeError("Wallet entries are append-only and cannot be updated.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise RuntimeError("Wallet entries are append-only and cannot be deleted.")
