# apps/appointments/views.py
import logging
from decimal import Decimal

from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django_filters import rest_framework as filters

from core.constants import UserRoles
from core.pagination import StandardPagination
from core.permissions import IsPatient
from .models import Appointment
from .serializers import (
    AppointmentSerializer, AppointmentRescheduleSerializer, BookAppointmentSerializer,
    RescheduleSerializer, StatusUpdateSerializer, ReviewSerializer
)
from .services import BookingCoordinator

logger = logging.getLogger(__name__)


class AppointmentFilter(filters.FilterSet):
    date_from = filters.DateFilter(field_name='date', lookup_expr='gte')
    date_to = filters.DateFilter(field_name='date', lookup_expr='lte')

    class Meta:
        model = Appointment
        fields = ['status', 'consultation_type', 'doctor', 'date']


# ============================
# Appointment ViewSet
# ============================

class AppointmentViewSet(mixins.CreateModelMixin,
                         mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         viewsets.GenericViewSet):
    """
    Booking, rescheduling, status changes and reviews.
    Patients see their own appointments, doctors theirs, admins all.
    """
    queryset = Appointment.objects.select_related('doctor__user', 'patient')
    serializer_class = AppointmentSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = AppointmentFilter

    def get_permissions(self):
        if self.action in ['create', 'review']:
            return [IsAuthenticated(), IsPatient()]
        return [IsAuthenticated()]

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user

        if user.is_admin:
            return queryset
        if user.role == UserRoles.DOCTOR:
            return queryset.filter(doctor__user=user)
        return queryset.filter(patient=user)

    def get_serializer_class(self):
        if self.action == 'create':
            return BookAppointmentSerializer
        return AppointmentSerializer

    def create(self, request, *args, **kwargs):
        serializer = BookAppointmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        appointment = BookingCoordinator.book_appointment(
            request.user,
            data['doctor'],
            data['date'],
            data['start_time'],
            data['consultation_type'],
            data['reason'],
        )
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def reschedule(self, request, pk=None):
        serializer = RescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        appointment = BookingCoordinator.reschedule(
            self.get_object(), data['date'], data['start_time'], request.user, data['reason']
        )
        return Response(AppointmentSerializer(appointment).data)

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = BookingCoordinator.update_status(
            self.get_object(),
            serializer.validated_data['status'],
            request.user,
            serializer.validated_data['reason'],
        )
        response = {
            'appointment': AppointmentSerializer(result['appointment']).data,
            'refund_status': result['refund_status'],
        }
        if result['settlement']:
            response['doctor_share'] = str(result['settlement']['doctor_share'].quantize(Decimal('0.01')))
        return Response(response)

    @action(detail=True, methods=['post'])
    def review(self, request, pk=None):
        serializer = ReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        appointment = BookingCoordinator.submit_review(
            self.get_object(), request.user, data['rating'], data['feedback'], data['is_anonymous']
        )
        return Response(AppointmentSerializer(appointment).data)

    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        appointment = self.get_object()
        serializer = AppointmentRescheduleSerializer(appointment.reschedules.all(), many=True)
        return Response(serializer.data)
