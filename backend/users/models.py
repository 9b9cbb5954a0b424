from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Account used both by renters and by car owners."""

    phone = models.CharField(
        max_length=32,
        blank=True,
        default="",
        help_text="Optional E.164 formatted phone number.",
    )
    license_number = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Driver licence number used to prefill renter details.",
    )

    @property
    def full_name(self) -> str:
        return self.get_full_name() or self.username
