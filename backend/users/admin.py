from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "email", "phone", "license_number", "is_staff", "is_active")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Renter details", {"fields": ("phone", "license_number")}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Renter details", {"fields": ("phone", "license_number")}),
    )
