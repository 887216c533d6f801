# apps/appointments/models.py
import uuid

from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models

from core.constants import AppointmentStatus, ConsultationType, UserRoles
from core.mixins.audit_fields import TimestampedMixin


class Appointment(TimestampedMixin):
    """Patient booking of one slot with one doctor"""

    appointment_id = models.CharField(max_length=50, unique=True, blank=True)
    patient = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='appointments'
    )
    doctor = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.CASCADE,
        related_name='appointments'
    )

    # Timing
    date = models.DateField()
    start_time = models.CharField(max_length=5)
    end_time = models.CharField(max_length=5)
    consultation_type = models.CharField(max_length=10, choices=ConsultationType.choices)

    reason = models.CharField(max_length=500, blank=True)
    status = models.CharField(max_length=20, choices=AppointmentStatus.choices, default=AppointmentStatus.PENDING)

    # Shown at booking; charging happens through payments
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    # Cancellation
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    cancelled_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cancelled_appointments'
    )

    # Review
    rating = models.PositiveSmallIntegerField(
        null=True, blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    feedback = models.TextField(max_length=1000, blank=True)
    is_anonymous = models.BooleanField(default=False)
    reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'appointments'
        ordering = ['date', 'start_time']
        indexes = [
            models.Index(fields=['appointment_id']),
            models.Index(fields=['patient', 'date']),
            models.Index(fields=['doctor', 'date', 'status']),
            models.Index(fields=['status', 'created_at']),
        ]

    def __str__(self):
        return f"Appt {self.appointment_id}: {self.patient} with {self.doctor}"

    def save(self, *args, **kwargs):
        if not self.appointment_id:
            self.appointment_id = self._generate_appointment_id()
        super().save(*args, **kwargs)

    def _generate_appointment_id(self):
        """Generate APPT-YYYYMMDD-XXXXXXXXXX format ID"""
        return f"APPT-{self.date:%Y%m%d}-{uuid.uuid4().hex[:10].upper()}"


class AppointmentReschedule(models.Model):
    """History entry written every time an appointment moves"""

    appointment = models.ForeignKey(
        Appointment,
        on_delete=models.CASCADE,
        related_name='reschedules'
    )
    previous_date = models.DateField()
    previous_start_time = models.CharField(max_length=5)
    previous_end_time = models.CharField(max_length=5)
    new_date = models.DateField()
    new_start_time = models.CharField(max_length=5)
    new_end_time = models.CharField(max_length=5)

    rescheduled_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        related_name='appointment_reschedules'
    )
    actor_role = models.CharField(max_length=20, choices=UserRoles.CHOICES)
    reason = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'appointment_reschedules'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return (
            f"{self.appointment_id}: {self.previous_date} {self.previous_start_time} -> "
            f"{self.new_date} {self.new_start_time}"
        )
