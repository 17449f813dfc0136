"""Notifications app configuration and signal registration."""

from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    """Django app config for notifications; connects order event receivers."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'notifications'

    def ready(self):
        import notifications.signals  # noqa: F401
