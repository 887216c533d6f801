from datetime import timedelta

import pytest
from django.utils import timezone

from apps.appointments.models import Appointment
from apps.availability.models import Availability, BookedSlot, DateOverride
from apps.availability.services import AvailabilityService, normalize_schedule
from core.constants import SlotStatus
from core.exceptions import (
    InvalidInput, NotFound, NoAvailability, SlotUnavailable, StateViolation
)
from core.utils.time_utils import weekday_name

from .conftest import weekly_schedule

pytestmark = pytest.mark.django_db


@pytest.fixture
def make_appointment(patient, doctor):
    def _make(on_date, start_time='09:00', consultation_type='clinic'):
        return Appointment.objects.create(
            patient=patient,
            doctor=doctor,
            date=on_date,
            start_time=start_time,
            end_time='23:59',
            consultation_type=consultation_type,
        )
    return _make


class TestSlotGeneration:

    def test_lists_every_start_that_fits_the_shift(self, availability, booking_date):
        result = AvailabilityService(availability).get_available_slots(booking_date)

        expected = ['09:00', '09:30', '10:00', '10:30', '11:00', '11:30']
        assert result['clinic']['slots'] == expected
        assert result['video']['slots'] == expected
        assert result['clinic']['fee'] == 500
        assert result['video']['fee'] == 300
        assert result['slot_duration'] == 30

    def test_buffer_time_spaces_out_starts(self, availability, booking_date):
        availability.buffer_time = 10
        availability.save()

        result = AvailabilityService(availability).get_available_slots(booking_date, 'clinic')

        assert result['clinic']['slots'] == ['09:00', '09:40', '10:20', '11:00']
        assert 'video' not in result

    def test_day_without_schedule_has_no_slots(self, doctor, booking_date):
        other_days = [day for day in weekly_schedule() if day['day'] != weekday_name(booking_date)]
        availability = Availability.objects.create(
            doctor=doctor, slot_duration=30, schedule=other_days, effective_from=timezone.localdate()
        )

        result = AvailabilityService(availability).get_available_slots(booking_date)

        assert result['clinic']['slots'] == []
        assert result['video']['slots'] == []

    def test_booked_slot_is_excluded_for_its_type_only(self, availability, booking_date, make_appointment):
        AvailabilityService(availability).book_slot(booking_date, '10:00', 'clinic', make_appointment(booking_date))

        result = AvailabilityService(availability).get_available_slots(booking_date)

        assert '10:00' not in result['clinic']['slots']
        assert '10:00' in result['video']['slots']

    def test_released_slot_becomes_available_again(self, availability, booking_date, make_appointment):
        appointment = make_appointment(booking_date, '10:00')
        AvailabilityService(availability).book_slot(booking_date, '10:00', 'clinic', appointment)

        AvailabilityService.release_slot(appointment, SlotStatus.CANCELLED)

        result = AvailabilityService(availability).get_available_slots(booking_date, 'clinic')
        assert '10:00' in result['clinic']['slots']

    def test_unknown_type_is_rejected(self, availability, booking_date):
        with pytest.raises(InvalidInput):
            AvailabilityService(availability).get_available_slots(booking_date, 'home')

    def test_no_schedule_covering_the_date(self, doctor, availability):
        with pytest.raises(NotFound):
            AvailabilityService.get_availability(doctor, timezone.localdate() - timedelta(days=1))

    def test_newest_schedule_wins(self, doctor, availability, booking_date):
        newer = Availability.objects.create(
            doctor=doctor, slot_duration=15, schedule=weekly_schedule(),
            effective_from=timezone.localdate() + timedelta(days=1),
            effective_to=booking_date + timedelta(days=10),
        )

        assert AvailabilityService.get_availability(doctor, booking_date) == newer


class TestOverrides:

    def test_unavailable_override_removes_all_slots(self, availability, booking_date):
        service = AvailabilityService(availability)
        service.apply_override(booking_date, is_available=False, reason='Conference')

        result = service.get_available_slots(booking_date)

        assert result['clinic']['slots'] == []
        assert result['video']['slots'] == []

    def test_available_override_replaces_weekly_shifts(self, availability, booking_date):
        service = AvailabilityService(availability)
        service.apply_override(booking_date, True, [{
            'start_time': '14:00',
            'end_time': '15:00',
            'consultation_types': [{'type': 'video', 'fee': 250}],
        }])

        result = service.get_available_slots(booking_date)

        assert result['clinic']['slots'] == []
        assert result['video']['slots'] == ['14:00', '14:30']
        assert result['video']['fee'] == 250

    def test_inactive_override_shift_offers_nothing(self, availability, booking_date):
        service = AvailabilityService(availability)
        service.apply_override(booking_date, True, [
            {'start_time': '09:00', 'end_time': '10:00',
             'consultation_types': [{'type': 'clinic', 'fee': 500}]},
            {'start_time': '14:00', 'end_time': '15:00', 'is_active': False,
             'consultation_types': [{'type': 'clinic', 'fee': 500}]},
        ])

        assert service.get_available_slots(booking_date, 'clinic')['clinic']['slots'] == ['09:00', '09:30']
        assert service.is_slot_available(booking_date, '14:00', 'clinic') is False

    def test_override_on_same_date_is_replaced(self, availability, booking_date):
        service = AvailabilityService(availability)
        service.apply_override(booking_date, is_available=False)
        service.apply_override(booking_date, True, [{
            'start_time': '09:00', 'end_time': '10:00',
            'consultation_types': [{'type': 'clinic', 'fee': 500}],
        }])

        assert DateOverride.objects.filter(availability=availability, date=booking_date).count() == 1
        assert service.get_available_slots(booking_date, 'clinic')['clinic']['slots'] == ['09:00', '09:30']

    def test_available_override_needs_consultation_types(self, availability, booking_date):
        with pytest.raises(InvalidInput):
            AvailabilityService(availability).apply_override(
                booking_date, True, [{'start_time': '09:00', 'end_time': '10:00'}]
            )

    def test_remove_override_restores_weekly_schedule(self, availability, booking_date):
        service = AvailabilityService(availability)
        service.apply_override(booking_date, is_available=False)

        service.remove_override(booking_date)

        assert len(service.get_available_slots(booking_date)['clinic']['slots']) == 6

    def test_remove_missing_override(self, availability, booking_date):
        with pytest.raises(NotFound):
            AvailabilityService(availability).remove_override(booking_date)


class TestPartialOverride:

    def test_block_inside_shift_splits_it(self, availability, booking_date):
        override = AvailabilityService(availability).apply_partial_override(booking_date, '10:00', '10:30')

        assert override.is_available is True
        assert [(s['start_time'], s['end_time']) for s in override.shifts] == [
            ('09:00', '10:00'), ('10:30', '12:00')
        ]
        for shift in override.shifts:
            assert {t['type'] for t in shift['consultation_types']} == {'clinic', 'video'}

        slots = AvailabilityService(availability).get_available_slots(booking_date, 'clinic')['clinic']['slots']
        assert slots == ['09:00', '09:30', '10:30', '11:00', '11:30']

    def test_block_overlapping_start_trims_shift(self, availability, booking_date):
        override = AvailabilityService(availability).apply_partial_override(booking_date, '08:00', '10:00')

        assert [(s['start_time'], s['end_time']) for s in override.shifts] == [('10:00', '12:00')]

    def test_block_overlapping_end_trims_shift(self, availability, booking_date):
        override = AvailabilityService(availability).apply_partial_override(booking_date, '11:00', '13:00')

        assert [(s['start_time'], s['end_time']) for s in override.shifts] == [('09:00', '11:00')]

    def test_block_covering_shift_makes_day_unavailable(self, availability, booking_date):
        override = AvailabilityService(availability).apply_partial_override(booking_date, '08:00', '13:00')

        assert override.is_available is False
        assert override.shifts == []

    def test_block_end_must_follow_start(self, availability, booking_date):
        with pytest.raises(InvalidInput):
            AvailabilityService(availability).apply_partial_override(booking_date, '11:00', '10:00')

    def test_nothing_to_block(self, availability, booking_date):
        service = AvailabilityService(availability)
        service.apply_override(booking_date, is_available=False)

        with pytest.raises(NoAvailability):
            service.apply_partial_override(booking_date, '10:00', '10:30')


class TestBookSlot:

    def test_books_and_computes_end_time(self, availability, booking_date, make_appointment):
        slot = AvailabilityService(availability).book_slot(
            booking_date, '09:30', 'video', make_appointment(booking_date, '09:30', 'video')
        )

        assert slot.status == SlotStatus.BOOKED
        assert slot.end_time == '10:00'
        assert slot.doctor_id == availability.doctor_id

    def test_taken_slot_is_rejected(self, availability, booking_date, make_appointment):
        AvailabilityService(availability).book_slot(booking_date, '09:00', 'clinic', make_appointment(booking_date))

        with pytest.raises(SlotUnavailable):
            AvailabilityService(availability).book_slot(
                booking_date, '09:00', 'clinic', make_appointment(booking_date)
            )

    def test_start_off_the_grid_is_rejected(self, availability, booking_date, make_appointment):
        with pytest.raises(SlotUnavailable):
            AvailabilityService(availability).book_slot(
                booking_date, '09:10', 'clinic', make_appointment(booking_date, '09:10')
            )

    def test_unavailable_day_is_rejected(self, availability, booking_date, make_appointment):
        AvailabilityService(availability).apply_override(booking_date, is_available=False)

        with pytest.raises(NoAvailability):
            AvailabilityService(availability).book_slot(
                booking_date, '09:00', 'clinic', make_appointment(booking_date)
            )

    def test_concurrent_booking_loses_at_the_constraint(self, availability, booking_date,
                                                        make_appointment, monkeypatch):
        AvailabilityService(availability).book_slot(booking_date, '09:00', 'clinic', make_appointment(booking_date))

        # Second request passed its availability check before the first committed
        monkeypatch.setattr(AvailabilityService, 'is_slot_available', lambda self, *args: True)

        with pytest.raises(SlotUnavailable):
            AvailabilityService(availability).book_slot(
                booking_date, '09:00', 'clinic', make_appointment(booking_date)
            )

        assert BookedSlot.objects.filter(
            doctor=availability.doctor, date=booking_date, start_time='09:00',
            consultation_type='clinic', status=SlotStatus.BOOKED,
        ).count() == 1

    def test_cancelled_slot_can_be_booked_again(self, availability, booking_date, make_appointment):
        first = make_appointment(booking_date)
        AvailabilityService(availability).book_slot(booking_date, '09:00', 'clinic', first)
        AvailabilityService.release_slot(first)

        slot = AvailabilityService(availability).book_slot(
            booking_date, '09:00', 'clinic', make_appointment(booking_date)
        )

        assert slot.status == SlotStatus.BOOKED


class TestSlotStatus:

    def test_terminal_slot_cannot_move(self, availability, booking_date, make_appointment):
        slot = AvailabilityService(availability).book_slot(
            booking_date, '09:00', 'clinic', make_appointment(booking_date)
        )
        AvailabilityService.set_slot_status(slot, SlotStatus.COMPLETED)

        with pytest.raises(StateViolation):
            AvailabilityService.set_slot_status(slot, SlotStatus.BOOKED)

    def test_release_without_booked_slot_is_a_no_op(self, make_appointment, booking_date):
        assert AvailabilityService.release_slot(make_appointment(booking_date)) == 0


class TestScheduleValidation:

    def test_requires_a_consultation_type_somewhere(self):
        schedule = [{'day': 'Monday', 'shifts': [{'start_time': '09:00', 'end_time': '10:00'}]}]
        with pytest.raises(InvalidInput):
            normalize_schedule(schedule)

    def test_rejects_inverted_shift(self):
        schedule = weekly_schedule(days=['Monday'], start='12:00', end='09:00')
        with pytest.raises(InvalidInput):
            normalize_schedule(schedule)

    def test_rejects_unknown_day(self):
        with pytest.raises(InvalidInput):
            normalize_schedule([{'day': 'Funday', 'shifts': []}])
