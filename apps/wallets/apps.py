from django.apps import AppConfig


class WalletsConfig(AppConfig):
    name = 'apps.wallets'
    verbose_name = 'Doctor Wallets'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        """Import signals when app is ready"""
        import apps.wallets.signals  # noqa: F401
