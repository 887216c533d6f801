# core/constants.py

from django.db import models


class UserRoles:
    """User role constants for RBAC"""
    PATIENT = 'patient'
    DOCTOR = 'doctor'
    ADMIN = 'admin'

    CHOICES = [
        (PATIENT, 'Patient'),
        (DOCTOR, 'Doctor'),
        (ADMIN, 'Administrator'),
    ]


class WeekDay(models.TextChoices):
    MONDAY = 'Monday', 'Monday'
    TUESDAY = 'Tuesday', 'Tuesday'
    WEDNESDAY = 'Wednesday', 'Wednesday'
    THURSDAY = 'Thursday', 'Thursday'
    FRIDAY = 'Friday', 'Friday'
    SATURDAY = 'Saturday', 'Saturday'
    SUNDAY = 'Sunday', 'Sunday'


class ConsultationType(models.TextChoices):
    CLINIC = 'clinic', 'Clinic'
    VIDEO = 'video', 'Video'


class SlotStatus(models.TextChoices):
    BOOKED = 'booked', 'Booked'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    NO_SHOW = 'no_show', 'No Show'


class AppointmentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    CONFIRMED = 'confirmed', 'Confirmed'
    RESCHEDULED = 'rescheduled', 'Rescheduled'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    NO_SHOW = 'no_show', 'No Show'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    AUTHORIZED = 'authorized', 'Authorized'
    CAPTURED = 'captured', 'Captured'
    REFUNDED = 'refunded', 'Refunded'
    PARTIALLY_REFUNDED = 'partially_refunded', 'Partially Refunded'
    FAILED = 'failed', 'Failed'


class PaymentMethods(models.TextChoices):
    ONLINE = 'online', 'Online'
    UPI = 'upi', 'UPI'
    CARD = 'card', 'Card'
    NET_BANKING = 'net_banking', 'Net Banking'


class RefundInitiator(models.TextChoices):
    SYSTEM = 'system', 'System'
    ADMIN = 'admin', 'Admin'
    DOCTOR = 'doctor', 'Doctor'
    PATIENT = 'patient', 'Patient'


class RefundStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PROCESSED = 'processed', 'Processed'
    FAILED = 'failed', 'Failed'


class EarningStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    RELEASED = 'released', 'Released'
    REFUNDED = 'refunded', 'Refunded'


class TransactionType(models.TextChoices):
    APPOINTMENT_PAYMENT = 'appointment_payment', 'Appointment Payment'
    DOCTOR_CREDIT = 'doctor_credit', 'Doctor Credit'
    WITHDRAWAL_REQUEST = 'withdrawal_request', 'Withdrawal Request'
    WITHDRAWAL_PROCESSED = 'withdrawal_processed', 'Withdrawal Processed'
    REFUND = 'refund', 'Refund'
    CLAWBACK = 'clawback', 'Clawback'
    CLAWBACK_DEFERRED = 'clawback_deferred', 'Clawback Deferred'


class TransactionStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PROCESSING = 'processing', 'Processing'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'


class ReferenceType(models.TextChoices):
    APPOINTMENT = 'Appointment', 'Appointment'
    PAYMENT = 'Payment', 'Payment'
    WITHDRAWAL = 'Withdrawal', 'Withdrawal'
    SERVICE = 'Service', 'Service'


class NotificationType(models.TextChoices):
    APPOINTMENT_SCHEDULED = 'appointment_scheduled', 'Appointment Scheduled'
    APPOINTMENT_STATUS = 'appointment_status', 'Appointment Status'
    APPOINTMENT_RESCHEDULE = 'appointment_reschedule', 'Appointment Reschedule'
    PAYMENT_CONFIRMATION = 'payment_confirmation', 'Payment Confirmation'
    REFUND_INITIATE = 'refund_initiate', 'Refund Initiated'
    WALLET_CREDIT = 'wallet_credit', 'Wallet Credit'
