# apps/availability/serializers.py
from django.db.models import Q
from django.utils import timezone
from rest_framework import serializers

from apps.doctors.models import Doctor
from core.constants import ConsultationType, SlotStatus
from core.exceptions import InvalidInput
from .models import Availability, DateOverride, BookedSlot
from .services import normalize_schedule, normalize_shifts


class DateOverrideSerializer(serializers.ModelSerializer):
    class Meta:
        model = DateOverride
        fields = ['id', 'date', 'is_available', 'shifts', 'reason', 'created_at', 'updated_at']
        read_only_fields = fields


class BookedSlotSerializer(serializers.ModelSerializer):
    appointment_id = serializers.CharField(source='appointment.appointment_id', read_only=True)

    class Meta:
        model = BookedSlot
        fields = [
            'id', 'date', 'start_time', 'end_time', 'consultation_type',
            'status', 'appointment', 'appointment_id', 'created_at'
        ]
        read_only_fields = fields


class AvailabilitySerializer(serializers.ModelSerializer):
    doctor = serializers.PrimaryKeyRelatedField(queryset=Doctor.objects.all(), required=False)
    overrides = DateOverrideSerializer(many=True, read_only=True)

    class Meta:
        model = Availability
        fields = [
            'id', 'doctor', 'is_virtual', 'slot_duration', 'buffer_time', 'schedule',
            'effective_from', 'effective_to', 'is_active', 'overrides',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'overrides', 'created_at', 'updated_at']

    def validate_slot_duration(self, value):
        if value < 5:
            raise serializers.ValidationError('Slot duration must be at least 5 minutes.')
        return value

    def validate_schedule(self, value):
        try:
            return normalize_schedule(value)
        except InvalidInput as e:
            raise serializers.ValidationError(str(e.detail))

    def validate(self, attrs):
        effective_from = attrs.get('effective_from', getattr(self.instance, 'effective_from', None))
        effective_to = attrs.get('effective_to', getattr(self.instance, 'effective_to', None))
        if effective_from and effective_to and effective_to < effective_from:
            raise serializers.ValidationError({'effective_to': 'Must not be before effective_from.'})

        if self.instance is None:
            doctor = attrs.get('doctor')
            if doctor is None:
                raise serializers.ValidationError({'doctor': 'This field is required.'})
            if 'schedule' not in attrs:
                raise serializers.ValidationError({'schedule': 'This field is required.'})

            start = effective_from or timezone.localdate()
            overlapping = Availability.objects.filter(doctor=doctor, is_active=True).filter(
                Q(effective_to__isnull=True) | Q(effective_to__gte=start)
            )
            if overlapping.exists() and not effective_to:
                raise serializers.ValidationError(
                    'Doctor already has an active availability schedule. Update it or set an '
                    'end date for this new schedule.'
                )
        return attrs


class ShiftField(serializers.ListField):
    child = serializers.DictField()


class OverrideSerializer(serializers.Serializer):
    date = serializers.DateField()
    is_available = serializers.BooleanField(default=False)
    shifts = ShiftField(required=False, default=list)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['is_available']:
            try:
                attrs['shifts'] = normalize_shifts(attrs['shifts'], require_types=True)
            except InvalidInput as e:
                raise serializers.ValidationError({'shifts': str(e.detail)})
        return attrs


class PartialOverrideSerializer(serializers.Serializer):
    date = serializers.DateField()
    block_start = serializers.RegexField(r'^([01]\d|2[0-3]):([0-5]\d)$')
    block_end = serializers.RegexField(r'^([01]\d|2[0-3]):([0-5]\d)$')
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['block_end'] <= attrs['block_start']:
            raise serializers.ValidationError({'block_end': 'Block end must be after block start.'})
        return attrs


class SlotQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
    type = serializers.ChoiceField(choices=ConsultationType.choices, required=False)


class BookSlotSerializer(serializers.Serializer):
    date = serializers.DateField()
    start_time = serializers.RegexField(r'^([01]\d|2[0-3]):([0-5]\d)$')
    consultation_type = serializers.ChoiceField(choices=ConsultationType.choices)
    appointment = serializers.IntegerField()


class SlotStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SlotStatus.choices)
