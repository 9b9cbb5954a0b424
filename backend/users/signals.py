from __future__ import annotations

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver


@receiver(post_save, sender=settings.AUTH_USER_MODEL, dispatch_uid="users_provision_wallet")
def _provision_wallet_on_signup(sender, instance, created, raw=False, **kwargs):
    if not created or raw:
        return
    from wallets.ledger import ensure_wallet

    ensure_wallet(instance.pk)
