"""Signaling app configuration."""

from django.apps import AppConfig


class SignalingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'signaling'

    def ready(self):
        # Fail fast on a missing encryption key instead of on the first request
        from services.container import get_container
        get_container()
