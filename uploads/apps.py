from django.apps import AppConfig


class UploadsConfig(AppConfig):
    name = 'uploads'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        """Import signals when the app is ready"""
        import uploads.signals  # noqa: F401
