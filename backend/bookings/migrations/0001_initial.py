import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("cars", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("booking_number", models.CharField(max_length=32, unique=True)),
                ("pickup_at", models.DateTimeField()),
                (
                    "return_at",
                    models.DateTimeField(help_text="Return time, must be after pickup_at."),
                ),
                (
                    "total_amount",
                    models.DecimalField(decimal_places=2, default=0, max_digits=18),
                ),
                (
                    "total_deposit",
                    models.DecimalField(decimal_places=2, default=0, max_digits=18),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("wallet", "Wallet"),
                            ("cash", "Cash"),
                            ("bank_transfer", "Bank transfer"),
                        ],
                        max_length=16,
                    ),
                ),
                ("renter_full_name", models.CharField(max_length=150)),
                ("renter_email", models.EmailField(max_length=254)),
                ("renter_phone", models.CharField(blank=True, default="", max_length=32)),
                ("renter_license_number", models.CharField(max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("is_deleted", models.BooleanField(default=False)),
                (
                    "renter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings_as_renter",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["pickup_at", "return_at"], name="bookings_bo_pickup__5b1f0e_idx"
                    ),
                    models.Index(
                        fields=["renter", "created_at"], name="bookings_bo_renter__8c3a2d_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("pickup_at__lt", models.F("return_at"))),
                        name="booking_pickup_before_return",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingItem",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("price_per_day", models.DecimalField(decimal_places=2, max_digits=10)),
                ("deposit", models.DecimalField(decimal_places=2, max_digits=10)),
                ("driver_full_name", models.CharField(max_length=150)),
                ("driver_license_number", models.CharField(max_length=64)),
                (
                    "driver_license_image",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending_deposit", "Pending deposit"),
                            ("confirm", "Confirmed"),
                            ("in_progress", "In progress"),
                            ("pending_payment", "Pending payment"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending_deposit",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("is_deleted", models.BooleanField(default=False)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="bookings.booking",
                    ),
                ),
                (
                    "car",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="booking_items",
                        to="cars.car",
                    ),
                ),
            ],
            options={
                "ordering": ["booking_id", "id"],
                "indexes": [
                    models.Index(fields=["car", "status"], name="bookings_bo_car_id_4e7d91_idx"),
                    models.Index(
                        fields=["driver_license_number", "status"],
                        name="bookings_bo_driver__a26c5f_idx",
                    ),
                ],
            },
        ),
    ]
