# apps/payments/models.py
import uuid
from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone

from core.constants import (
    PaymentStatus, PaymentMethods, RefundInitiator, RefundStatus, EarningStatus
)
from core.mixins.audit_fields import TimestampedMixin


class Payment(TimestampedMixin):
    """Patient payment for one appointment"""

    ALLOWED_TRANSITIONS = {
        PaymentStatus.PENDING: {PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED, PaymentStatus.FAILED},
        PaymentStatus.AUTHORIZED: {PaymentStatus.CAPTURED, PaymentStatus.FAILED},
        PaymentStatus.CAPTURED: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
        PaymentStatus.REFUNDED: set(),
        PaymentStatus.PARTIALLY_REFUNDED: set(),
        PaymentStatus.FAILED: set(),
    }

    payment_number = models.CharField(
        max_length=30, unique=True,
        help_text="Auto-generated payment number: PAY-YYYYMMDD-XXXXXXXXXX"
    )
    appointment = models.ForeignKey(
        'appointments.Appointment', on_delete=models.CASCADE,
        related_name='payments'
    )
    doctor = models.ForeignKey(
        'doctors.Doctor', on_delete=models.PROTECT,
        related_name='payments'
    )
    patient = models.ForeignKey(
        'accounts.User', on_delete=models.PROTECT,
        related_name='payments'
    )

    amount = models.DecimalField(
        max_digits=12, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=3, default='INR')
    method = models.CharField(max_length=20, choices=PaymentMethods.choices, default=PaymentMethods.ONLINE)
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)

    # Gateway references
    gateway_name = models.CharField(max_length=30, default='razorpay')
    gateway_payment_id = models.CharField(max_length=100, blank=True)
    gateway_order_id = models.CharField(max_length=100, blank=True)

    # Refund record
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_reason = models.TextField(blank=True)
    refund_initiated_by = models.CharField(max_length=10, choices=RefundInitiator.choices, blank=True)
    refund_status = models.CharField(max_length=10, choices=RefundStatus.choices, blank=True)
    gateway_refund_id = models.CharField(max_length=100, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(blank=True)
    authorized_at = models.DateTimeField(null=True, blank=True)
    captured_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['payment_number']),
            models.Index(fields=['appointment', 'status']),
            models.Index(fields=['doctor', 'status']),
            models.Index(fields=['patient', 'created_at']),
        ]

    def __str__(self):
        return f"{self.payment_number} - {self.amount} ({self.status})"

    def save(self, *args, **kwargs):
        if not self.payment_number:
            self.payment_number = self.generate_payment_number()
        super().save(*args, **kwargs)

    def generate_payment_number(self):
        """Generate unique payment number: PAY-YYYYMMDD-XXXXXXXXXX"""
        return f"PAY-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:10].upper()}"

    def can_transition(self, new_status):
        return new_status in self.ALLOWED_TRANSITIONS.get(self.status, set())

    @property
    def is_refundable(self):
        return self.status == PaymentStatus.CAPTURED and self.refund_status != RefundStatus.PROCESSED


class UpcomingEarning(TimestampedMixin):
    """Doctor's share of a captured payment, held until the appointment completes"""

    doctor = models.ForeignKey(
        'doctors.Doctor', on_delete=models.PROTECT,
        related_name='upcoming_earnings'
    )
    appointment = models.OneToOneField(
        'appointments.Appointment', on_delete=models.CASCADE,
        related_name='earning'
    )
    payment = models.OneToOneField(
        Payment, on_delete=models.CASCADE,
        related_name='earning'
    )
    amount = models.DecimalField(
        max_digits=14, decimal_places=4,
        validators=[MinValueValidator(Decimal('0'))]
    )
    status = models.CharField(max_length=10, choices=EarningStatus.choices, default=EarningStatus.PENDING)
    scheduled_date = models.DateField()
    released_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'upcoming_earnings'
        ordering = ['scheduled_date']
        indexes = [
            models.Index(fields=['doctor', 'status']),
        ]

    def __str__(self):
        return f"Earning {self.amount} for {self.appointment_id} ({self.status})"
