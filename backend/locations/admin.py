from django.contrib import admin
from locations.models import UserLocation


@admin.register(UserLocation)
class UserLocationAdmin(admin.ModelAdmin):
    """Admin panel for live user locations (ciphertext is never shown)"""

    list_display = [
        "user",
        "created_at",
        "expires_at",
    ]

    list_filter = [
        "expires_at",
    ]

    search_fields = [
        "user__username",
    ]

    exclude = [
        "encrypted_latitude",
        "encrypted_longitude",
    ]

    readonly_fields = [
        "created_at",
        "expires_at",
    ]

    ordering = ("-created_at",)
