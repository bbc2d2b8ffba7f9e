from django.apps import AppConfig


class DashboardConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'dashboard'
    verbose_name = 'FarmAid dashboard'

    def ready(self):  # pragma: no cover
        from . import signals  # noqa: F401
