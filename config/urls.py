from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Auth
    path('api/auth/', include('apps.accounts.urls')),

    # API endpoints
    path('api/doctors/', include('apps.doctors.urls')),
    path('api/availability/', include('apps.availability.urls')),
    path('api/appointments/', include('apps.appointments.urls')),
    path('api/payments/', include('apps.payments.urls')),
    path('api/wallets/', include('apps.wallets.urls')),
    path('api/notifications/', include('apps.notifications.urls')),
]
