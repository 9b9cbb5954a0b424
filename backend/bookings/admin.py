from django.contrib import admin

from .models import Booking, BookingItem


class BookingItemInline(admin.TabularInline):
    model = BookingItem
    extra = 0
    fields = ("car", "driver_full_name", "driver_license_number", "price_per_day", "deposit", "status")
    readonly_fields = ("price_per_day", "deposit", "status")
    can_delete = False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_number",
        "renter",
        "pickup_at",
        "return_at",
        "payment_method",
        "total_deposit",
        "is_deleted",
    )
    list_filter = ("payment_method", "is_deleted")
    search_fields = ("booking_number", "renter__username", "renter_license_number")
    readonly_fields = ("booking_number", "total_amount", "total_deposit", "payment_method")
    inlines = [BookingItemInline]
