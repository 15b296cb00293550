from django.apps import AppConfig


class AvailabilityConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'availability'
    verbose_name = 'Доступность'

    def ready(self):
        from . import signals  # noqa: F401
