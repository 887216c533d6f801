# apps/doctors/filters.py

from django_filters import rest_framework as filters
from django.db.models import Q

from .models import Doctor


class DoctorFilter(filters.FilterSet):
    """Filter for doctors"""

    search = filters.CharFilter(method='filter_search')
    specialization = filters.CharFilter(field_name='specialization', lookup_expr='iexact')
    max_clinic_fee = filters.NumberFilter(field_name='clinic_consultation_fee', lookup_expr='lte')
    max_video_fee = filters.NumberFilter(field_name='video_consultation_fee', lookup_expr='lte')
    min_rating = filters.NumberFilter(field_name='average_rating', lookup_expr='gte')

    class Meta:
        model = Doctor
        fields = ['specialization', 'is_active']

    def filter_search(self, queryset, name, value):
        """Search by name, email or doctor_id"""
        return queryset.filter(
            Q(user__full_name__icontains=value) |
            Q(user__email__icontains=value) |
            Q(doctor_id__icontains=value)
        )
