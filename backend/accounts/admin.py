from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for custom User model"""

    list_display = [
        "username",
        "email",
        "is_offline",
        "distance_unit",
        "is_active",
        "is_staff",
    ]

    list_filter = [
        "is_offline",
        "distance_unit",
        "is_active",
        "date_joined",
    ]

    search_fields = [
        "username",
        "email",
        "device_token",
    ]

    ordering = ("username",)

    # Extend default Django UserAdmin fieldsets
    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Signal Preferences",
            {
                "fields": (
                    "device_token",
                    "is_offline",
                    "distance_unit",
                )
            },
        ),
    )
