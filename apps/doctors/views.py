# apps/doctors/views.py

from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated
from django_filters import rest_framework as filters

from core.pagination import StandardPagination
from .models import Doctor
from .filters import DoctorFilter
from .serializers import DoctorMinimalSerializer


class DoctorViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only doctor directory used to pick a doctor before booking.
    """
    queryset = Doctor.objects.select_related('user').filter(is_active=True)
    serializer_class = DoctorMinimalSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = DoctorFilter
    pagination_class = StandardPagination
