# apps/availability/views.py
import logging

from django.db import transaction
from django.utils import timezone
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django_filters import rest_framework as filters

from apps.appointments.models import Appointment
from apps.doctors.models import Doctor
from core.constants import UserRoles, SlotStatus
from core.exceptions import NotFound, InvalidInput, StateViolation
from core.pagination import StandardPagination
from core.permissions import IsDoctorOrAdmin, IsAdmin, IsOwningDoctorOrAdmin
from core.utils.time_utils import parse_date
from .models import Availability, BookedSlot
from .serializers import (
    AvailabilitySerializer, DateOverrideSerializer, BookedSlotSerializer,
    OverrideSerializer, PartialOverrideSerializer, SlotQuerySerializer,
    BookSlotSerializer, SlotStatusSerializer
)
from .services import AvailabilityService

logger = logging.getLogger(__name__)


# ============================
# Availability ViewSet
# ============================

class AvailabilityViewSet(viewsets.ModelViewSet):
    """
    Weekly schedules, date overrides and slot lookups.
    """
    queryset = Availability.objects.select_related('doctor__user').prefetch_related('overrides')
    serializer_class = AvailabilitySerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination
    filter_backends = [filters.DjangoFilterBackend]
    filterset_fields = ['doctor', 'is_active', 'is_virtual']

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'slots']:
            return [IsAuthenticated()]
        if self.action == 'book':
            return [IsAuthenticated(), IsAdmin()]
        return [IsAuthenticated(), IsDoctorOrAdmin(), IsOwningDoctorOrAdmin()]

    def perform_create(self, serializer):
        user = self.request.user
        availability = serializer.save(created_by=user, updated_by=user)
        logger.info(f"Availability {availability.pk} created for doctor {availability.doctor_id}")

    def create(self, request, *args, **kwargs):
        data = dict(request.data.items())
        if request.user.role == UserRoles.DOCTOR:
            doctor = getattr(request.user, 'doctor_profile', None)
            if doctor is None:
                raise NotFound("Doctor profile not found")
            data['doctor'] = doctor.pk
        serializer = self.get_serializer(data=data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        return Response(serializer.data, status=status.HTTP_201_CREATED)

    def perform_update(self, serializer):
        serializer.save(doctor=serializer.instance.doctor, updated_by=self.request.user)

    def perform_destroy(self, instance):
        upcoming = BookedSlot.objects.filter(
            availability=instance,
            status=SlotStatus.BOOKED,
            date__gte=timezone.localdate(),
        ).exists()
        if upcoming:
            raise StateViolation('Cannot delete availability with upcoming appointments')

        # Past slots keep pointing at the schedule
        if BookedSlot.objects.filter(availability=instance).exists():
            instance.is_active = False
            instance.updated_by = self.request.user
            instance.save(update_fields=['is_active', 'updated_by', 'updated_at'])
            logger.info(f"Availability {instance.pk} deactivated (has booking history)")
            return
        instance.delete()

    # ============================
    # Slots
    # ============================

    @action(detail=False, methods=['get'], url_path=r'doctor/(?P<doctor_id>\d+)/slots')
    def slots(self, request, doctor_id=None):
        query = SlotQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        doctor = Doctor.objects.filter(pk=doctor_id, is_active=True).first()
        if doctor is None:
            raise NotFound('Doctor not found')

        on_date = query.validated_data['date']
        availability = AvailabilityService.get_availability(doctor, on_date)
        result = AvailabilityService(availability).get_available_slots(
            on_date, query.validated_data.get('type')
        )
        result['availability'] = availability.pk
        return Response(result)

    @action(detail=True, methods=['post'])
    def book(self, request, pk=None):
        serializer = BookSlotSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        availability = self.get_object()
        appointment = Appointment.objects.filter(
            pk=data['appointment'], doctor=availability.doctor
        ).first()
        if appointment is None:
            raise NotFound('Appointment not found for this doctor')
        if BookedSlot.objects.filter(appointment=appointment, status=SlotStatus.BOOKED).exists():
            raise InvalidInput('Appointment already holds a booked slot')

        with transaction.atomic():
            slot = AvailabilityService(availability).book_slot(
                data['date'], data['start_time'], data['consultation_type'], appointment
            )
        return Response(BookedSlotSerializer(slot).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['patch'], url_path=r'slots/(?P<slot_id>\d+)')
    def slot_status(self, request, pk=None, slot_id=None):
        serializer = SlotStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        availability = self.get_object()
        with transaction.atomic():
            slot = BookedSlot.objects.select_for_update().filter(pk=slot_id, availability=availability).first()
            if slot is None:
                raise NotFound('Booked slot not found')
            AvailabilityService.set_slot_status(slot, serializer.validated_data['status'])
        return Response(BookedSlotSerializer(slot).data)

    # ============================
    # Overrides
    # ============================

    @action(detail=True, methods=['post'])
    def override(self, request, pk=None):
        serializer = OverrideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        override = AvailabilityService(self.get_object()).apply_override(
            data['date'], data['is_available'], data['shifts'], data['reason']
        )
        return Response(DateOverrideSerializer(override).data)

    @action(detail=True, methods=['delete'], url_path=r'override/(?P<date>[0-9-]+)')
    def remove_override(self, request, pk=None, date=None):
        AvailabilityService(self.get_object()).remove_override(parse_date(date))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='partial-override')
    def partial_override(self, request, pk=None):
        serializer = PartialOverrideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        override = AvailabilityService(self.get_object()).apply_partial_override(
            data['date'], data['block_start'], data['block_end'], data['reason']
        )
        return Response(DateOverrideSerializer(override).data)
