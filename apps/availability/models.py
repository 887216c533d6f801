# apps/availability/models.py
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.constants import ConsultationType, SlotStatus
from core.mixins.audit_fields import AuditFieldsMixin, TimestampedMixin


def default_slot_duration():
    return settings.DEFAULT_SLOT_DURATION


class AvailabilityQuerySet(models.QuerySet):
    def covering(self, on_date):
        """Active schedules whose effective window contains on_date"""
        return self.filter(
            is_active=True,
            effective_from__lte=on_date,
        ).filter(
            Q(effective_to__isnull=True) | Q(effective_to__gte=on_date)
        )


class Availability(AuditFieldsMixin):
    """
    Weekly schedule of a doctor.

    schedule holds one entry per weekday:
        [{"day": "Monday",
          "shifts": [{"start_time": "09:00", "end_time": "12:00", "is_active": true,
                      "consultation_types": [{"type": "clinic", "fee": 500, "max_patients": 1}]}]}]
    """

    doctor = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.CASCADE,
        related_name='availabilities'
    )
    is_virtual = models.BooleanField(default=False)
    slot_duration = models.PositiveIntegerField(
        default=default_slot_duration,
        validators=[MinValueValidator(5)],
        help_text="Minutes per slot"
    )
    buffer_time = models.PositiveIntegerField(default=0, help_text="Minutes between slots")
    schedule = models.JSONField(default=list, blank=True)

    effective_from = models.DateField(default=timezone.localdate)
    effective_to = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    objects = AvailabilityQuerySet.as_manager()

    class Meta:
        db_table = 'availabilities'
        verbose_name_plural = 'Availabilities'
        ordering = ['-effective_from', '-id']
        indexes = [
            models.Index(fields=['doctor', 'is_active']),
        ]

    def __str__(self):
        return f"{self.doctor} from {self.effective_from}"

    def covers(self, on_date):
        return (
            self.is_active
            and self.effective_from <= on_date
            and (self.effective_to is None or on_date <= self.effective_to)
        )

    def day_schedule(self, day_name):
        for entry in self.schedule or []:
            if entry.get('day') == day_name:
                return entry
        return None


class DateOverride(TimestampedMixin):
    """Replaces the weekly schedule for one calendar date"""

    availability = models.ForeignKey(
        Availability,
        on_delete=models.CASCADE,
        related_name='overrides'
    )
    date = models.DateField()
    is_available = models.BooleanField(default=False)
    shifts = models.JSONField(default=list, blank=True)
    reason = models.CharField(max_length=255, blank=True)

    class Meta:
        db_table = 'availability_overrides'
        ordering = ['date']
        constraints = [
            models.UniqueConstraint(fields=['availability', 'date'], name='unique_override_per_date'),
        ]

    def __str__(self):
        state = 'available' if self.is_available else 'unavailable'
        return f"{self.date} {state}"


class BookedSlot(TimestampedMixin):
    """Reserved slot. At most one booked row per doctor/date/start/type."""

    availability = models.ForeignKey(
        Availability,
        on_delete=models.PROTECT,
        related_name='booked_slots'
    )
    doctor = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.CASCADE,
        related_name='booked_slots'
    )
    appointment = models.ForeignKey(
        'appointments.Appointment',
        on_delete=models.CASCADE,
        related_name='booked_slots'
    )
    date = models.DateField()
    start_time = models.CharField(max_length=5)
    end_time = models.CharField(max_length=5)
    consultation_type = models.CharField(max_length=10, choices=ConsultationType.choices)
    status = models.CharField(max_length=10, choices=SlotStatus.choices, default=SlotStatus.BOOKED)

    ALLOWED_TRANSITIONS = {
        SlotStatus.BOOKED: {SlotStatus.COMPLETED, SlotStatus.CANCELLED, SlotStatus.NO_SHOW},
        SlotStatus.COMPLETED: set(),
        SlotStatus.CANCELLED: set(),
        SlotStatus.NO_SHOW: set(),
    }

    class Meta:
        db_table = 'booked_slots'
        ordering = ['date', 'start_time']
        constraints = [
            models.UniqueConstraint(
                fields=['doctor', 'date', 'start_time', 'consultation_type'],
                condition=Q(status=SlotStatus.BOOKED),
                name='unique_booked_slot',
            ),
        ]
        indexes = [
            models.Index(fields=['doctor', 'date', 'status']),
        ]

    def __str__(self):
        return f"{self.date} {self.start_time}-{self.end_time} {self.consultation_type} ({self.status})"
