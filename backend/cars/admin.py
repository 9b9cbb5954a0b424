from django.contrib import admin

from .models import Car


@admin.register(Car)
class CarAdmin(admin.ModelAdmin):
    list_display = ("license_plate", "brand", "model", "owner", "base_price_per_day", "status")
    list_filter = ("status", "brand")
    search_fields = ("license_plate", "brand", "model")
