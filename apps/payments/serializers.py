# apps/payments/serializers.py
from decimal import Decimal

from rest_framework import serializers

from apps.appointments.models import Appointment
from core.constants import PaymentStatus, PaymentMethods
from .models import Payment, UpcomingEarning


class UpcomingEarningSerializer(serializers.ModelSerializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = UpcomingEarning
        fields = ['id', 'amount', 'status', 'scheduled_date', 'released_at', 'notes']
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    appointment_id = serializers.CharField(source='appointment.appointment_id', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    earning = UpcomingEarningSerializer(read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'payment_number', 'appointment', 'appointment_id', 'doctor', 'patient',
            'amount', 'currency', 'method', 'status', 'status_display',
            'gateway_name', 'gateway_payment_id', 'gateway_order_id',
            'refund_amount', 'refund_reason', 'refund_initiated_by', 'refund_status',
            'gateway_refund_id', 'refunded_at', 'failure_reason',
            'authorized_at', 'captured_at', 'earning', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    appointment = serializers.PrimaryKeyRelatedField(queryset=Appointment.objects.all())
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=PaymentMethods.choices, default=PaymentMethods.ONLINE)
    status = serializers.ChoiceField(
        choices=[PaymentStatus.PENDING, PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED],
        default=PaymentStatus.PENDING
    )
    gateway_payment_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    gateway_order_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        user = self.context['request'].user
        if not user.is_admin:
            if attrs['appointment'].patient_id != user.id:
                raise serializers.ValidationError({'appointment': 'Not your appointment.'})
            if attrs['status'] != PaymentStatus.PENDING:
                raise serializers.ValidationError({'status': 'Only pending payments can be created.'})
        return attrs


class PaymentCaptureSerializer(serializers.Serializer):
    gateway_payment_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class PaymentAuthorizeSerializer(serializers.Serializer):
    gateway_order_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class PaymentFailSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)
    reason = serializers.CharField(max_length=500)


class ProcessResultSerializer(serializers.Serializer):
    doctor_share = serializers.DecimalField(max_digits=14, decimal_places=2)
    platform_commission = serializers.DecimalField(max_digits=14, decimal_places=2)
    wallet_balance = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_earned = serializers.DecimalField(max_digits=14, decimal_places=2)
