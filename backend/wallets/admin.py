from django.contrib import admin

from .models import Wallet, WalletEntry


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("user", "balance", "updated_at", "is_deleted")
    search_fields = ("user__username", "user__email")
    readonly_fields = ("balance", "created_at", "updated_at")


@admin.register(WalletEntry)
class WalletEntryAdmin(admin.ModelAdmin):
    list_display = ("wallet", "kind", "amount", "booking", "created_at")
    list_filter = ("kind",)
    search_fields = ("wallet__user__username", "booking__booking_number", "note")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
