from django.apps import AppConfig


class AvailabilityConfig(AppConfig):
    name = 'apps.availability'
    verbose_name = 'Doctor Availability'
    default_auto_field = 'django.db.models.BigAutoField'
