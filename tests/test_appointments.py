from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.appointments.models import Appointment, AppointmentReschedule
from apps.appointments.services import BookingCoordinator
from apps.appointments.tasks import cleanup_pending_appointments
from apps.availability.models import BookedSlot
from apps.availability.services import AvailabilityService
from apps.notifications.models import Notification
from apps.payments.models import Payment, UpcomingEarning
from apps.payments.services import PaymentLedger
from apps.wallets.models import Transaction
from apps.wallets.services import get_wallet
from core.constants import (
    AppointmentStatus, EarningStatus, NotificationType, PaymentStatus,
    SlotStatus, TransactionStatus, TransactionType
)
from core.exceptions import (
    Conflict, Forbidden, InvalidInput, NotFound, SlotUnavailable, StateViolation
)
from core.utils.time_utils import slot_datetime

pytestmark = pytest.mark.django_db


@pytest.fixture
def appointment(patient, doctor, availability, booking_date):
    return BookingCoordinator.book_appointment(patient, doctor.pk, booking_date, '10:00', 'clinic')


@pytest.fixture
def paid_appointment(appointment):
    PaymentLedger.create_payment(
        appointment, Decimal('500.00'), status=PaymentStatus.CAPTURED, gateway_payment_id='pay_test_1'
    )
    appointment.refresh_from_db()
    return appointment


def booked_slot_of(appointment):
    return BookedSlot.objects.get(appointment=appointment, status=SlotStatus.BOOKED)


class TestBooking:

    def test_creates_pending_appointment_and_reserves_slot(self, appointment, booking_date):
        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.appointment_id.startswith(f"APPT-{booking_date:%Y%m%d}-")
        assert appointment.end_time == '10:30'
        assert appointment.consultation_fee == Decimal('500.00')

        slot = booked_slot_of(appointment)
        assert (slot.start_time, slot.consultation_type) == ('10:00', 'clinic')

    def test_same_slot_cannot_be_booked_twice(self, appointment, other_patient, doctor, booking_date):
        with pytest.raises(SlotUnavailable):
            BookingCoordinator.book_appointment(other_patient, doctor.pk, booking_date, '10:00', 'clinic')

    def test_concurrent_loser_gets_slot_unavailable(self, appointment, other_patient, doctor,
                                                   booking_date, monkeypatch):
        # Loser checked availability before the winner committed
        monkeypatch.setattr(AvailabilityService, 'is_slot_available', lambda self, *args: True)

        with pytest.raises(SlotUnavailable):
            BookingCoordinator.book_appointment(other_patient, doctor.pk, booking_date, '10:00', 'clinic')

        assert Appointment.objects.filter(doctor=doctor, date=booking_date).count() == 1

    def test_ids_do_not_depend_on_existing_rows(self, appointment, other_patient, doctor, booking_date):
        Appointment.objects.filter(pk=appointment.pk).update(appointment_id=f"APPT-{booking_date:%Y%m%d}-9999")

        second = BookingCoordinator.book_appointment(other_patient, doctor.pk, booking_date, '10:30', 'clinic')

        prefix, suffix = second.appointment_id.rsplit('-', 1)
        assert prefix == f"APPT-{booking_date:%Y%m%d}"
        assert len(suffix) == 10
        assert second.appointment_id != appointment.appointment_id

        assert Appointment.objects.count() == 1

    def test_other_type_at_same_time_is_free(self, appointment, other_patient, doctor, booking_date):
        video = BookingCoordinator.book_appointment(other_patient, doctor.pk, booking_date, '10:00', 'video')

        assert video.consultation_fee == Decimal('300.00')

    def test_past_slot_is_rejected(self, patient, doctor, availability):
        with pytest.raises(InvalidInput):
            BookingCoordinator.book_appointment(
                patient, doctor.pk, timezone.localdate() - timedelta(days=1), '10:00', 'clinic'
            )

    def test_unknown_doctor(self, patient, availability, booking_date):
        with pytest.raises(NotFound):
            BookingCoordinator.book_appointment(patient, 999999, booking_date, '10:00', 'clinic')

    def test_notifies_patient(self, patient, doctor, availability, booking_date,
                              django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            appointment = BookingCoordinator.book_appointment(patient, doctor.pk, booking_date, '09:00', 'clinic')

        notification = Notification.objects.get(user=patient)
        assert notification.type == NotificationType.APPOINTMENT_SCHEDULED
        assert notification.reference_id == appointment.appointment_id


class TestReschedule:

    def test_doctor_needs_one_hour_notice(self, appointment, doctor_user, booking_date):
        now = slot_datetime(booking_date, '10:00') - timedelta(minutes=30)

        with pytest.raises(Forbidden):
            BookingCoordinator.reschedule(appointment.pk, booking_date, '11:00', doctor_user, now=now)

    def test_patient_with_enough_notice_moves_the_slot(self, appointment, patient, booking_date):
        now = slot_datetime(booking_date, '10:00') - timedelta(hours=25)

        moved = BookingCoordinator.reschedule(
            appointment.appointment_id, booking_date, '11:00', patient, reason='Clash', now=now
        )

        assert moved.status == AppointmentStatus.RESCHEDULED
        assert (moved.start_time, moved.end_time) == ('11:00', '11:30')
        assert booked_slot_of(moved).start_time == '11:00'
        assert BookedSlot.objects.get(appointment=moved, start_time='10:00').status == SlotStatus.CANCELLED

        history = AppointmentReschedule.objects.get(appointment=moved)
        assert (history.previous_start_time, history.new_start_time) == ('10:00', '11:00')
        assert history.actor_role == 'patient'

        slots = AvailabilityService(AvailabilityService.get_availability(moved.doctor, booking_date))
        assert '10:00' in slots.get_available_slots(booking_date, 'clinic')['clinic']['slots']

    def test_patient_needs_twenty_hours_notice(self, appointment, patient, booking_date):
        now = slot_datetime(booking_date, '10:00') - timedelta(hours=19)

        with pytest.raises(Forbidden):
            BookingCoordinator.reschedule(appointment.pk, booking_date, '11:00', patient, now=now)

    def test_only_participants_may_reschedule(self, appointment, other_patient, booking_date):
        with pytest.raises(Forbidden):
            BookingCoordinator.reschedule(appointment.pk, booking_date + timedelta(days=1), '10:00', other_patient)

    def test_taken_target_keeps_the_original_slot(self, appointment, other_patient, patient, doctor, booking_date):
        BookingCoordinator.book_appointment(other_patient, doctor.pk, booking_date, '11:00', 'clinic')

        with pytest.raises(SlotUnavailable):
            BookingCoordinator.reschedule(appointment.pk, booking_date, '11:00', patient)

        appointment.refresh_from_db()
        assert appointment.start_time == '10:00'
        assert booked_slot_of(appointment).start_time == '10:00'

    def test_cancelled_appointment_cannot_move(self, appointment, patient, booking_date):
        BookingCoordinator.update_status(appointment.pk, AppointmentStatus.CANCELLED, patient)

        with pytest.raises(StateViolation):
            BookingCoordinator.reschedule(appointment.pk, booking_date + timedelta(days=1), '10:00', patient)


class TestStatusUpdates:

    def test_patient_may_only_cancel(self, appointment, patient):
        with pytest.raises(Forbidden):
            BookingCoordinator.update_status(appointment.pk, AppointmentStatus.COMPLETED, patient)

    def test_pending_and_rescheduled_cannot_be_set(self, appointment, admin_user):
        for target in (AppointmentStatus.PENDING, AppointmentStatus.RESCHEDULED):
            with pytest.raises(InvalidInput):
                BookingCoordinator.update_status(appointment.pk, target, admin_user)

    def test_cancel_releases_slot_and_fails_open_payment(self, appointment, patient):
        payment = PaymentLedger.create_payment(appointment, Decimal('500.00'))

        result = BookingCoordinator.update_status(
            appointment.pk, AppointmentStatus.CANCELLED, patient, reason='Feeling better'
        )

        cancelled = result['appointment']
        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.cancelled_by == patient
        assert cancelled.cancellation_reason == 'Feeling better'
        assert BookedSlot.objects.get(appointment=cancelled).status == SlotStatus.CANCELLED
        assert result['refund_status'] is None

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.FAILED
        txn = Transaction.objects.get(reference_id=payment.payment_number)
        assert txn.status == TransactionStatus.FAILED

    def test_cancel_refunds_captured_payment(self, paid_appointment, patient, gateway):
        result = BookingCoordinator.update_status(
            paid_appointment.pk, AppointmentStatus.CANCELLED, patient, gateway=gateway
        )

        assert result['refund_status'] == 'processed'
        assert gateway.refunds == [('pay_test_1', Decimal('500.00'))]

        payment = Payment.objects.get(appointment=paid_appointment)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refund_initiated_by == 'system'
        assert UpcomingEarning.objects.get(payment=payment).status == EarningStatus.REFUNDED

    def test_cancel_survives_gateway_failure(self, paid_appointment, patient, failing_gateway):
        result = BookingCoordinator.update_status(
            paid_appointment.pk, AppointmentStatus.CANCELLED, patient, gateway=failing_gateway
        )

        assert result['refund_status'] == 'failed'
        paid_appointment.refresh_from_db()
        assert paid_appointment.status == AppointmentStatus.CANCELLED
        assert Payment.objects.get(appointment=paid_appointment).status == PaymentStatus.CAPTURED

    def test_complete_releases_earning_to_wallet(self, paid_appointment, doctor_user, doctor):
        result = BookingCoordinator.update_status(paid_appointment.pk, AppointmentStatus.COMPLETED, doctor_user)

        assert result['settlement']['doctor_share'] == Decimal('400.0000')
        assert BookedSlot.objects.get(appointment=paid_appointment).status == SlotStatus.COMPLETED
        assert get_wallet(doctor).current_balance == Decimal('400.0000')

    def test_complete_after_partial_refund_releases_reduced_share(self, paid_appointment, doctor_user,
                                                                  doctor, gateway):
        payment = Payment.objects.get(appointment=paid_appointment)
        PaymentLedger.process_refund(payment, Decimal('100.00'), gateway=gateway)

        result = BookingCoordinator.update_status(paid_appointment.pk, AppointmentStatus.COMPLETED, doctor_user)

        assert result['settlement']['doctor_share'] == Decimal('320.0000')
        assert UpcomingEarning.objects.get(payment=payment).status == EarningStatus.RELEASED
        assert get_wallet(doctor).current_balance == Decimal('320.0000')

    def test_no_show_marks_slot(self, paid_appointment, doctor_user):
        BookingCoordinator.update_status(paid_appointment.pk, AppointmentStatus.NO_SHOW, doctor_user)

        assert BookedSlot.objects.get(appointment=paid_appointment).status == SlotStatus.NO_SHOW

    def test_terminal_status_is_final(self, paid_appointment, doctor_user):
        BookingCoordinator.update_status(paid_appointment.pk, AppointmentStatus.COMPLETED, doctor_user)

        with pytest.raises(StateViolation):
            BookingCoordinator.update_status(paid_appointment.pk, AppointmentStatus.CANCELLED, doctor_user)

    def test_other_doctor_is_forbidden(self, appointment, other_doctor):
        with pytest.raises(Forbidden):
            BookingCoordinator.update_status(appointment.pk, AppointmentStatus.CONFIRMED, other_doctor.user)


class TestReview:

    def test_review_updates_doctor_rating(self, paid_appointment, patient, doctor_user, doctor):
        BookingCoordinator.update_status(paid_appointment.pk, AppointmentStatus.COMPLETED, doctor_user)

        reviewed = BookingCoordinator.submit_review(paid_appointment.pk, patient, 4, 'Helpful')

        assert reviewed.rating == 4
        doctor.refresh_from_db()
        assert doctor.total_ratings == 1
        assert doctor.average_rating == Decimal('4.00')

    def test_review_only_once(self, paid_appointment, patient, doctor_user):
        BookingCoordinator.update_status(paid_appointment.pk, AppointmentStatus.COMPLETED, doctor_user)
        BookingCoordinator.submit_review(paid_appointment.pk, patient, 5)

        with pytest.raises(Conflict):
            BookingCoordinator.submit_review(paid_appointment.pk, patient, 3)

    def test_review_requires_completion(self, appointment, patient):
        with pytest.raises(StateViolation):
            BookingCoordinator.submit_review(appointment.pk, patient, 5)

    def test_rating_range(self, appointment, patient):
        with pytest.raises(InvalidInput):
            BookingCoordinator.submit_review(appointment.pk, patient, 6)


class TestCleanupSweep:

    def expire(self, appointment, minutes=11):
        Appointment.objects.filter(pk=appointment.pk).update(
            created_at=timezone.now() - timedelta(minutes=minutes)
        )

    def test_expired_pending_booking_frees_its_slot(self, appointment, availability, booking_date):
        payment = PaymentLedger.create_payment(appointment, Decimal('500.00'))
        self.expire(appointment)

        result = BookingCoordinator.cleanup_expired_appointments()

        assert result == {'deleted': 1, 'skipped': 0}
        assert not Appointment.objects.filter(pk=appointment.pk).exists()
        assert not BookedSlot.objects.filter(appointment_id=appointment.pk).exists()
        slots = AvailabilityService(availability).get_available_slots(booking_date, 'clinic')['clinic']['slots']
        assert '10:00' in slots
        assert Transaction.objects.get(reference_id=payment.payment_number).status == TransactionStatus.FAILED

    def test_recent_pending_booking_is_kept(self, appointment):
        self.expire(appointment, minutes=5)

        assert BookingCoordinator.cleanup_expired_appointments() == {'deleted': 0, 'skipped': 0}
        assert Appointment.objects.filter(pk=appointment.pk).exists()

    def test_confirmed_booking_is_kept(self, paid_appointment):
        self.expire(paid_appointment)

        BookingCoordinator.cleanup_expired_appointments()

        assert Appointment.objects.filter(pk=paid_appointment.pk).exists()

    def test_authorized_payment_is_skipped(self, appointment):
        payment = PaymentLedger.create_payment(appointment, Decimal('500.00'))
        PaymentLedger.authorize(payment, 'order_1')
        self.expire(appointment)

        assert BookingCoordinator.cleanup_expired_appointments() == {'deleted': 0, 'skipped': 1}

    def test_periodic_task_runs_the_sweep(self, appointment):
        self.expire(appointment)

        assert cleanup_pending_appointments.delay().get() == {'deleted': 1, 'skipped': 0}
