from __future__ import annotations

import logging

from celery import shared_task
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce

from core.pricing import ZERO, quantize_money

from .models import Wallet

logger = logging.getLogger(__name__)


@shared_task(name="wallets.audit_wallet_ledgers")
def audit_wallet_ledgers() -> int:
    """
    Compare every wallet balance with the sum of its ledger entries.

    Read-only; returns the number of wallets whose balance drifted.
    """
    rows = (
        Wallet.objects.active()
        .annotate(
            ledger_total=Coalesce(
                Sum("entries__amount", filter=Q(entries__is_deleted=False)),
                ZERO,
            )
        )
        .values_list("pk", "user_id", "balance", "ledger_total")
        .order_by("pk")
    )
    mismatches = 0
    checked = 0
    for wallet_id, user_id, balance, ledger_total in rows:
        checked += 1
        if quantize_money(balance) != quantize_money(ledger_total):
            mismatches += 1
            logger.error(
                "wallets: wallet %s of user %s has balance %s but ledger total %s",
                wallet_id,
                user_id,
                balance,
                ledger_total,
                extra={"wallet_id": wallet_id, "user_id": user_id},
            )
    logger.info("wallets: audited %s wallets, %s mismatched", checked, mismatches)
    return mismatches
