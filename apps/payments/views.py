# apps/payments/views.py
import logging

from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django_filters import rest_framework as filters

from core.constants import UserRoles, RefundInitiator
from core.exceptions import Forbidden
from core.pagination import StandardPagination
from core.permissions import IsAdmin, IsDoctorOrAdmin
from .gateways import get_gateway
from .models import Payment
from .serializers import (
    PaymentSerializer, PaymentCreateSerializer, PaymentCaptureSerializer,
    PaymentAuthorizeSerializer, PaymentFailSerializer, RefundSerializer,
    ProcessResultSerializer
)
from .services import PaymentLedger

logger = logging.getLogger(__name__)


# ============================
# Payment ViewSet
# ============================

class PaymentViewSet(mixins.CreateModelMixin,
                     mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    """
    Appointment payments. Gateway callbacks (authorize/capture/fail) are
    admin-only; doctors may settle or refund payments for their own
    appointments.
    """
    queryset = Payment.objects.select_related('appointment', 'doctor__user', 'patient', 'earning')
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination
    filter_backends = [filters.DjangoFilterBackend]
    filterset_fields = ['status', 'method', 'doctor', 'appointment']

    def get_permissions(self):
        if self.action in ['authorize', 'capture', 'fail']:
            return [IsAuthenticated(), IsAdmin()]
        if self.action in ['process', 'refund']:
            return [IsAuthenticated(), IsDoctorOrAdmin()]
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
            return PaymentCreateSerializer
        return PaymentSerializer

    def create(self, request, *args, **kwargs):
        serializer = PaymentCreateSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment = PaymentLedger.create_payment(
            data['appointment'],
            data['amount'],
            method=data['method'],
            status=data['status'],
            gateway_payment_id=data['gateway_payment_id'],
            gateway_order_id=data['gateway_order_id'],
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def authorize(self, request, pk=None):
        serializer = PaymentAuthorizeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentLedger.authorize(self.get_object(), serializer.validated_data['gateway_order_id'])
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=['post'])
    def capture(self, request, pk=None):
        serializer = PaymentCaptureSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentLedger.capture(self.get_object(), serializer.validated_data['gateway_payment_id'])
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=['post'])
    def fail(self, request, pk=None):
        serializer = PaymentFailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentLedger.mark_failed(self.get_object(), serializer.validated_data['reason'])
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=['post'])
    def process(self, request, pk=None):
        result = PaymentLedger.process_payment(self.get_object())
        return Response(ProcessResultSerializer(result).data)

    @action(detail=True, methods=['post'])
    def refund(self, request, pk=None):
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment = self.get_object()
        if request.user.is_admin:
            initiated_by = RefundInitiator.ADMIN
        elif payment.doctor.user_id == request.user.id:
            initiated_by = RefundInitiator.DOCTOR
        else:
            raise Forbidden("Only the treating doctor or an admin can refund")

        result = PaymentLedger.process_refund(
            payment,
            serializer.validated_data.get('amount'),
            serializer.validated_data['reason'],
            initiated_by,
            gateway=get_gateway(),
        )
        logger.info(f"Refund on {payment.payment_number} requested by {request.user.email}")
        return Response({
            'payment': PaymentSerializer(result['payment']).data,
            'gateway_refund_id': result['refund']['refund_id'],
        })
