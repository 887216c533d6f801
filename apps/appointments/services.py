# apps/appointments/services.py
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.availability.models import BookedSlot
from apps.availability.services import AvailabilityService
from apps.doctors.models import Doctor
from apps.notifications.services import NotificationService
from apps.payments.models import Payment
from apps.payments.services import PaymentLedger, RELEASABLE_PAYMENT_STATUSES
from apps.wallets.models import Transaction
from core.constants import (
    AppointmentStatus, ConsultationType, EarningStatus, NotificationType,
    PaymentStatus, SlotStatus, TransactionStatus, TransactionType, UserRoles
)
from core.exceptions import (
    InvalidInput, NotFound, Conflict, Forbidden, StateViolation, ExternalFailure
)
from core.utils.time_utils import parse_date, parse_hhmm, add_minutes, slot_datetime
from .models import Appointment, AppointmentReschedule

logger = logging.getLogger(__name__)

RESCHEDULABLE_STATUSES = [
    AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED
]
TERMINAL_STATUSES = [
    AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW
]
SLOT_STATUS_FOR = {
    AppointmentStatus.CANCELLED: SlotStatus.CANCELLED,
    AppointmentStatus.COMPLETED: SlotStatus.COMPLETED,
    AppointmentStatus.NO_SHOW: SlotStatus.NO_SHOW,
}
# Payments that mean money moved; the sweep never deletes these appointments
SETTLED_PAYMENT_STATUSES = [
    PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED,
    PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED,
]


def _lock_appointment(reference):
    queryset = Appointment.objects.select_for_update()
    if isinstance(reference, Appointment):
        lookup = {'pk': reference.pk}
    elif isinstance(reference, str) and not reference.isdigit():
        lookup = {'appointment_id': reference}
    else:
        lookup = {'pk': reference}

    appointment = queryset.filter(**lookup).first()
    if appointment is None:
        raise NotFound('Appointment not found')
    return appointment


def _actor_role(actor, appointment):
    """Role the actor acts in for this appointment; ownership is enforced"""
    if actor.role == UserRoles.ADMIN or actor.is_superuser:
        return UserRoles.ADMIN
    if actor.role == UserRoles.DOCTOR:
        if appointment.doctor.user_id != actor.id:
            raise Forbidden('Not your appointment')
        return UserRoles.DOCTOR
    if actor.role == UserRoles.PATIENT:
        if appointment.patient_id != actor.id:
            raise Forbidden('Not your appointment')
        return UserRoles.PATIENT
    raise Forbidden('Unknown role')


class BookingCoordinator:
    """
    Appointment lifecycle: booking, rescheduling, status changes, reviews
    and the sweep of abandoned pending bookings.
    """

    @staticmethod
    def book_appointment(patient, doctor_id, on_date, start_time, consultation_type, reason='', now=None):
        now = now or timezone.now()
        on_date = parse_date(on_date)
        parse_hhmm(start_time)
        if consultation_type not in ConsultationType.values:
            raise InvalidInput(f"Unknown consultation type '{consultation_type}'")
        if reason and len(reason) > 500:
            raise InvalidInput('Reason must be at most 500 characters')
        if slot_datetime(on_date, start_time) <= now:
            raise InvalidInput('Cannot book an appointment in the past')

        doctor = Doctor.objects.select_related('user').filter(pk=doctor_id, is_active=True).first()
        if doctor is None:
            raise NotFound('Doctor not found')

        availability = AvailabilityService.get_availability(doctor, on_date)
        service = AvailabilityService(availability)

        with transaction.atomic():
            appointment = Appointment.objects.create(
                patient=patient,
                doctor=doctor,
                date=on_date,
                start_time=start_time,
                end_time=add_minutes(start_time, availability.slot_duration),
                consultation_type=consultation_type,
                reason=reason or '',
                status=AppointmentStatus.PENDING,
                consultation_fee=doctor.fee_for(consultation_type),
            )
            service.book_slot(on_date, start_time, consultation_type, appointment)

            NotificationService.notify(
                patient,
                NotificationType.APPOINTMENT_SCHEDULED,
                'Appointment booked',
                f"Your {consultation_type} appointment with Dr. {doctor.full_name} on "
                f"{on_date} at {start_time} is reserved. Complete payment to confirm it.",
                reference_id=appointment.appointment_id,
            )

        logger.info(
            f"Appointment {appointment.appointment_id} booked by {patient.email} "
            f"for {on_date} {start_time} ({consultation_type})"
        )
        return appointment

    @staticmethod
    def reschedule(appointment_id, new_date, new_start_time, actor, reason='', now=None):
        now = now or timezone.now()
        new_date = parse_date(new_date)
        parse_hhmm(new_start_time)

        with transaction.atomic():
            appointment = _lock_appointment(appointment_id)
            role = _actor_role(actor, appointment)

            if appointment.status not in RESCHEDULABLE_STATUSES:
                raise StateViolation(f"Cannot reschedule a {appointment.status} appointment")

            if role == UserRoles.PATIENT:
                notice_hours = settings.PATIENT_RESCHEDULE_NOTICE_HOURS
            else:
                notice_hours = settings.DOCTOR_RESCHEDULE_NOTICE_HOURS

            current_start = slot_datetime(appointment.date, appointment.start_time)
            if current_start - now < timedelta(hours=notice_hours):
                raise Forbidden(
                    f"Appointments can only be rescheduled at least {notice_hours} hour(s) in advance"
                )

            if slot_datetime(new_date, new_start_time) <= now:
                raise InvalidInput('Cannot reschedule into the past')
            if new_date == appointment.date and new_start_time == appointment.start_time:
                raise InvalidInput('New slot is the same as the current one')

            availability = AvailabilityService.get_availability(appointment.doctor, new_date)
            service = AvailabilityService(availability)

            previous = (appointment.date, appointment.start_time, appointment.end_time)
            AvailabilityService.release_slot(appointment, SlotStatus.CANCELLED)
            slot = service.book_slot(new_date, new_start_time, appointment.consultation_type, appointment)

            AppointmentReschedule.objects.create(
                appointment=appointment,
                previous_date=previous[0],
                previous_start_time=previous[1],
                previous_end_time=previous[2],
                new_date=new_date,
                new_start_time=new_start_time,
                new_end_time=slot.end_time,
                rescheduled_by=actor,
                actor_role=role,
                reason=reason or '',
            )

            appointment.date = new_date
            appointment.start_time = new_start_time
            appointment.end_time = slot.end_time
            appointment.status = AppointmentStatus.RESCHEDULED
            appointment.save()

            recipient = appointment.patient if role != UserRoles.PATIENT else appointment.doctor.user
            NotificationService.notify(
                recipient,
                NotificationType.APPOINTMENT_RESCHEDULE,
                'Appointment rescheduled',
                f"Appointment {appointment.appointment_id} moved from {previous[0]} {previous[1]} "
                f"to {new_date} {new_start_time}",
                reference_id=appointment.appointment_id,
            )

        logger.info(
            f"Appointment {appointment.appointment_id} rescheduled by {role} to {new_date} {new_start_time}"
        )
        return appointment

    @staticmethod
    def update_status(appointment_id, new_status, actor, reason='', gateway=None):
        """
        Patients may only cancel. Cancelling releases the slot and refunds a
        captured payment; completing releases the slot and the escrowed earning.
        """
        if new_status not in AppointmentStatus.values:
            raise InvalidInput(f"Unknown status '{new_status}'")
        if new_status in [AppointmentStatus.PENDING, AppointmentStatus.RESCHEDULED]:
            raise InvalidInput(f"Status '{new_status}' cannot be set directly")

        result = {'settlement': None, 'refund': None, 'refund_status': None}

        with transaction.atomic():
            appointment = _lock_appointment(appointment_id)
            role = _actor_role(actor, appointment)

            if role == UserRoles.PATIENT and new_status != AppointmentStatus.CANCELLED:
                raise Forbidden('Patients can only cancel appointments')
            if appointment.status in TERMINAL_STATUSES:
                raise StateViolation(f"Appointment is already {appointment.status}")
            if appointment.status == new_status:
                raise StateViolation(f"Appointment is already {new_status}")

            previous_status = appointment.status
            appointment.status = new_status

            if new_status in SLOT_STATUS_FOR:
                AvailabilityService.release_slot(appointment, SLOT_STATUS_FOR[new_status])

            if new_status == AppointmentStatus.CANCELLED:
                appointment.cancelled_at = timezone.now()
                appointment.cancellation_reason = reason or ''
                appointment.cancelled_by = actor
                BookingCoordinator._fail_unpaid_payments(appointment)

            appointment.save()

            if new_status == AppointmentStatus.COMPLETED:
                payment = Payment.objects.filter(
                    appointment=appointment,
                    status__in=RELEASABLE_PAYMENT_STATUSES,
                    earning__status=EarningStatus.PENDING,
                ).first()
                if payment is not None:
                    result['settlement'] = PaymentLedger.process_payment(payment)

            NotificationService.notify(
                appointment.patient,
                NotificationType.APPOINTMENT_STATUS,
                'Appointment update',
                f"Appointment {appointment.appointment_id} changed from {previous_status} to {new_status}",
                reference_id=appointment.appointment_id,
            )

        logger.info(
            f"Appointment {appointment.appointment_id} {previous_status} -> {new_status} by {role}"
        )

        if new_status == AppointmentStatus.CANCELLED:
            captured = Payment.objects.filter(
                appointment=appointment, status=PaymentStatus.CAPTURED
            ).first()
            if captured is not None:
                try:
                    result['refund'] = PaymentLedger.auto_refund(
                        captured.pk, reason or 'Appointment cancellation', gateway=gateway
                    )
                    result['refund_status'] = 'processed'
                except ExternalFailure as e:
                    logger.error(
                        f"Refund for cancelled appointment {appointment.appointment_id} failed: {e.detail}"
                    )
                    result['refund_status'] = 'failed'

        result['appointment'] = appointment
        return result

    @staticmethod
    def _fail_unpaid_payments(appointment):
        for payment in Payment.objects.filter(
            appointment=appointment,
            status__in=[PaymentStatus.PENDING, PaymentStatus.AUTHORIZED],
        ):
            PaymentLedger.mark_failed(payment, 'Appointment cancelled')

    @staticmethod
    @transaction.atomic
    def submit_review(appointment_id, patient, rating, feedback='', is_anonymous=False):
        try:
            rating = int(rating)
        except (TypeError, ValueError):
            raise InvalidInput('Rating must be a number between 1 and 5')
        if not 1 <= rating <= 5:
            raise InvalidInput('Rating must be between 1 and 5')
        if feedback and len(feedback) > 1000:
            raise InvalidInput('Feedback must be at most 1000 characters')

        appointment = _lock_appointment(appointment_id)
        if appointment.patient_id != patient.id:
            raise Forbidden('Only the patient can review this appointment')
        if appointment.status != AppointmentStatus.COMPLETED:
            raise StateViolation('Only completed appointments can be reviewed')
        if appointment.reviewed_at is not None:
            raise Conflict('Appointment has already been reviewed')

        appointment.rating = rating
        appointment.feedback = feedback or ''
        appointment.is_anonymous = bool(is_anonymous)
        appointment.reviewed_at = timezone.now()
        appointment.save()

        doctor = Doctor.objects.select_for_update().get(pk=appointment.doctor_id)
        doctor.add_rating(rating)
        doctor.save(update_fields=['average_rating', 'total_ratings', 'updated_at'])

        logger.info(f"Review {rating}/5 recorded for {appointment.appointment_id}")
        return appointment

    @staticmethod
    def cleanup_expired_appointments(now=None):
        """
        Delete appointments still pending past the booking timeout together
        with their reserved slots. Each appointment is re-checked under a row
        lock so a booking confirmed meanwhile is left alone.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(minutes=settings.BOOKING_PENDING_TIMEOUT_MINUTES)

        candidates = list(
            Appointment.objects.filter(
                status=AppointmentStatus.PENDING, created_at__lt=cutoff
            ).values_list('pk', flat=True)
        )

        deleted = 0
        skipped = 0
        for pk in candidates:
            with transaction.atomic():
                appointment = Appointment.objects.select_for_update().filter(
                    pk=pk, status=AppointmentStatus.PENDING, created_at__lt=cutoff
                ).first()
                if appointment is None:
                    continue

                if Payment.objects.filter(
                    appointment=appointment, status__in=SETTLED_PAYMENT_STATUSES
                ).exists():
                    logger.warning(
                        f"Skipping expired appointment {appointment.appointment_id}: payment in progress"
                    )
                    skipped += 1
                    continue

                for payment in Payment.objects.filter(appointment=appointment):
                    for txn in Transaction.objects.filter(
                        reference_id=payment.payment_number,
                        type=TransactionType.APPOINTMENT_PAYMENT,
                    ).exclude(status=TransactionStatus.FAILED):
                        txn.status = TransactionStatus.FAILED
                        txn.notes = f"{txn.notes}\nExpired: appointment not paid in time".strip()
                        txn.save(update_fields=['status', 'notes', 'updated_at'])

                BookedSlot.objects.filter(appointment=appointment).delete()
                appointment_ref = appointment.appointment_id
                appointment.delete()
                deleted += 1
                logger.info(f"Deleted expired pending appointment {appointment_ref}")

        if deleted or skipped:
            logger.info(f"Cleanup sweep: {deleted} deleted, {skipped} skipped")
        return {'deleted': deleted, 'skipped': skipped}
