# apps/appointments/serializers.py
from rest_framework import serializers

from apps.doctors.serializers import DoctorMinimalSerializer
from core.constants import AppointmentStatus, ConsultationType
from .models import Appointment, AppointmentReschedule

TIME_REGEX = r'^([01]\d|2[0-3]):([0-5]\d)$'


class AppointmentSerializer(serializers.ModelSerializer):
    doctor_detail = DoctorMinimalSerializer(source='doctor', read_only=True)
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Appointment
        fields = [
            'id', 'appointment_id', 'patient', 'patient_name', 'doctor', 'doctor_detail',
            'date', 'start_time', 'end_time', 'consultation_type', 'reason',
            'status', 'status_display', 'consultation_fee',
            'cancelled_at', 'cancellation_reason',
            'rating', 'feedback', 'is_anonymous', 'reviewed_at',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class AppointmentRescheduleSerializer(serializers.ModelSerializer):
    rescheduled_by_name = serializers.CharField(source='rescheduled_by.full_name', read_only=True, default=None)

    class Meta:
        model = AppointmentReschedule
        fields = [
            'id', 'previous_date', 'previous_start_time', 'previous_end_time',
            'new_date', 'new_start_time', 'new_end_time',
            'rescheduled_by', 'rescheduled_by_name', 'actor_role', 'reason', 'created_at'
        ]
        read_only_fields = fields


class BookAppointmentSerializer(serializers.Serializer):
    doctor = serializers.IntegerField()
    date = serializers.DateField()
    start_time = serializers.RegexField(TIME_REGEX)
    consultation_type = serializers.ChoiceField(choices=ConsultationType.choices)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class RescheduleSerializer(serializers.Serializer):
    date = serializers.DateField()
    start_time = serializers.RegexField(TIME_REGEX)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW,
    ])
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class ReviewSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    feedback = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
    is_anonymous = serializers.BooleanField(required=False, default=False)
