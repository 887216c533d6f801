from django.apps import AppConfig


class AppointmentsConfig(AppConfig):
    name = 'apps.appointments'
    verbose_name = 'Appointments'
    default_auto_field = 'django.db.models.BigAutoField'
