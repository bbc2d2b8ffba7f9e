from django.apps import AppConfig


class ComplaintsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'complaints'
    verbose_name = 'Donor messages'

    def ready(self):  # pragma: no cover
        from . import signals  # noqa: F401
