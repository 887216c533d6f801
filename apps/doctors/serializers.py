# apps/doctors/serializers.py

from rest_framework import serializers

from .models import Doctor


class DoctorMinimalSerializer(serializers.ModelSerializer):
    """Minimal doctor serializer for listings and nested display"""

    full_name = serializers.CharField(source='user.full_name', read_only=True)

    class Meta:
        model = Doctor
        fields = [
            'id', 'doctor_id', 'full_name', 'specialization', 'qualification',
            'clinic_consultation_fee', 'video_consultation_fee',
            'average_rating', 'total_ratings', 'is_active'
        ]
        read_only_fields = fields
