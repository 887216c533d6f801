# apps/doctors/models.py

from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator

from core.constants import ConsultationType
from core.mixins.audit_fields import AuditFieldsMixin


class Doctor(AuditFieldsMixin, models.Model):
    """Doctor profile - link to User account"""

    user = models.OneToOneField(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='doctor_profile'
    )

    doctor_id = models.CharField(max_length=50, unique=True, blank=True)
    specialization = models.CharField(max_length=100, blank=True)
    qualification = models.CharField(max_length=200, blank=True)

    # Fees shown to patients at booking time
    clinic_consultation_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=0,
        validators=[MinValueValidator(Decimal('0'))]
    )
    video_consultation_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=0,
        validators=[MinValueValidator(Decimal('0'))]
    )

    # Ratings, fed by completed appointment reviews
    average_rating = models.DecimalField(max_digits=3, decimal_places=2, default=0)
    total_ratings = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'doctors'
        ordering = ['doctor_id']
        indexes = [
            models.Index(fields=['doctor_id']),
            models.Index(fields=['specialization']),
        ]

    def __str__(self):
        return f"Dr. {self.user.full_name}"

    def save(self, *args, **kwargs):
        if not self.doctor_id:
            self.doctor_id = self._generate_doctor_id()
        super().save(*args, **kwargs)

    def _generate_doctor_id(self):
        """Generate DOC-XXX format ID"""
        last = Doctor.objects.order_by('-id').first()
        count = (last.id if last else 0) + 1
        return f'DOC-{count:03d}'

    @property
    def full_name(self):
        return self.user.full_name

    def fee_for(self, consultation_type):
        if consultation_type == ConsultationType.VIDEO:
            return self.video_consultation_fee
        return self.clinic_consultation_fee

    def add_rating(self, rating):
        """Fold a new review into the running average. Caller saves."""
        total = self.average_rating * self.total_ratings + Decimal(rating)
        self.total_ratings += 1
        self.average_rating = (total / self.total_ratings).quantize(Decimal('0.01'))
