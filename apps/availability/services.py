# apps/availability/services.py
import logging

from django.db import IntegrityError, transaction

from core.constants import ConsultationType, SlotStatus, WeekDay
from core.exceptions import (
    InvalidInput, NotFound, NoAvailability, SlotUnavailable, StateViolation
)
from core.utils.time_utils import (
    parse_hhmm, format_minutes, add_minutes, parse_date, weekday_name
)
from .models import Availability, DateOverride, BookedSlot

logger = logging.getLogger(__name__)


def normalize_shifts(shifts, require_types=True):
    """
    Validate a list of shifts and return a clean copy.
    Each shift needs HH:MM bounds with end after start.
    """
    if not isinstance(shifts, list):
        raise InvalidInput("Shifts must be a list")

    cleaned = []
    for shift in shifts:
        if not isinstance(shift, dict):
            raise InvalidInput("Each shift must be an object")

        start = shift.get('start_time')
        end = shift.get('end_time')
        if parse_hhmm(end) <= parse_hhmm(start):
            raise InvalidInput(f"Shift {start}-{end} must end after it starts")

        types = []
        for entry in shift.get('consultation_types') or []:
            if entry.get('type') not in ConsultationType.values:
                raise InvalidInput(f"Unknown consultation type '{entry.get('type')}'")
            fee = entry.get('fee', 0)
            if not isinstance(fee, (int, float)) or isinstance(fee, bool) or fee < 0:
                raise InvalidInput("Consultation fee must be a non-negative number")
            max_patients = entry.get('max_patients', 1)
            if not isinstance(max_patients, int) or max_patients < 1:
                raise InvalidInput("max_patients must be at least 1")
            types.append({'type': entry['type'], 'fee': fee, 'max_patients': max_patients})

        if require_types and not types:
            raise InvalidInput("Each available shift must have at least one consultation type defined")

        cleaned.append({
            'start_time': start,
            'end_time': end,
            'is_active': bool(shift.get('is_active', True)),
            'consultation_types': types,
        })
    return cleaned


def normalize_schedule(schedule):
    """Validate a weekly schedule; at least one shift must offer a consultation type"""
    if not isinstance(schedule, list):
        raise InvalidInput("Schedule must be a list of days")

    cleaned = []
    seen = set()
    for entry in schedule:
        if not isinstance(entry, dict) or entry.get('day') not in WeekDay.values:
            raise InvalidInput(f"Invalid schedule day '{entry.get('day') if isinstance(entry, dict) else entry}'")
        if entry['day'] in seen:
            raise InvalidInput(f"Day '{entry['day']}' appears more than once")
        seen.add(entry['day'])
        cleaned.append({
            'day': entry['day'],
            'shifts': normalize_shifts(entry.get('shifts') or [], require_types=False),
        })

    has_types = any(
        shift['consultation_types'] for entry in cleaned for shift in entry['shifts']
    )
    if not has_types:
        raise InvalidInput("At least one shift must have consultation types defined")
    return cleaned


class AvailabilityService:
    """
    Slot generation, overrides and reservations for one availability schedule.
    """

    def __init__(self, availability):
        self.availability = availability

    # ----------------------------------------------------------------
    # Lookup
    # ----------------------------------------------------------------

    @staticmethod
    def get_availability(doctor, on_date):
        on_date = parse_date(on_date)
        availability = (
            Availability.objects.covering(on_date)
            .filter(doctor=doctor)
            .order_by('-effective_from', '-id')
            .first()
        )
        if availability is None:
            raise NotFound(f"No availability for {doctor} on {on_date}")
        return availability

    def get_override(self, on_date):
        return DateOverride.objects.filter(availability=self.availability, date=on_date).first()

    def effective_shifts(self, on_date):
        """
        Shifts that apply on a date. An override replaces the weekly schedule
        entirely; an unavailable override yields no shifts. Inactive shifts
        are skipped either way.
        """
        if not self.availability.covers(on_date):
            return []

        override = self.get_override(on_date)
        if override is not None:
            shifts = override.shifts if override.is_available else []
        else:
            day = self.availability.day_schedule(weekday_name(on_date))
            shifts = day.get('shifts', []) if day is not None else []
        return [shift for shift in shifts if shift.get('is_active', True)]

    def generate_starts(self, start_time, end_time):
        """Start times stepping by duration + buffer; a slot must finish by end_time"""
        duration = self.availability.slot_duration
        step = duration + self.availability.buffer_time
        current = parse_hhmm(start_time)
        end = parse_hhmm(end_time)

        starts = []
        while current + duration <= end:
            starts.append(format_minutes(current))
            current += step
        return starts

    def _booked_starts(self, on_date):
        rows = BookedSlot.objects.filter(
            doctor_id=self.availability.doctor_id,
            date=on_date,
            status=SlotStatus.BOOKED,
        ).values_list('start_time', 'consultation_type')
        return set(rows)

    # ----------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------

    def get_available_slots(self, on_date, consultation_type=None):
        on_date = parse_date(on_date)
        if consultation_type and consultation_type not in ConsultationType.values:
            raise InvalidInput(f"Unknown consultation type '{consultation_type}'")

        groups = {ctype: {'slots': set(), 'fee': None} for ctype in ConsultationType.values}
        booked = self._booked_starts(on_date)

        for shift in self.effective_shifts(on_date):
            starts = self.generate_starts(shift['start_time'], shift['end_time'])
            for entry in shift.get('consultation_types') or []:
                group = groups[entry['type']]
                fee = entry.get('fee')
                if fee is not None and (group['fee'] is None or fee < group['fee']):
                    group['fee'] = fee
                group['slots'].update(
                    start for start in starts if (start, entry['type']) not in booked
                )

        result = {
            'date': on_date.isoformat(),
            'slot_duration': self.availability.slot_duration,
        }
        for ctype, group in groups.items():
            if consultation_type and ctype != consultation_type:
                continue
            result[ctype] = {'slots': sorted(group['slots']), 'fee': group['fee']}
        return result

    def is_slot_available(self, on_date, start_time, consultation_type):
        on_date = parse_date(on_date)
        parse_hhmm(start_time)
        if consultation_type not in ConsultationType.values:
            raise InvalidInput(f"Unknown consultation type '{consultation_type}'")

        offered = False
        for shift in self.effective_shifts(on_date):
            types = {entry['type'] for entry in shift.get('consultation_types') or []}
            if consultation_type in types and start_time in self.generate_starts(shift['start_time'], shift['end_time']):
                offered = True
                break
        if not offered:
            return False

        return not BookedSlot.objects.filter(
            doctor_id=self.availability.doctor_id,
            date=on_date,
            start_time=start_time,
            consultation_type=consultation_type,
            status=SlotStatus.BOOKED,
        ).exists()

    # ----------------------------------------------------------------
    # Overrides
    # ----------------------------------------------------------------

    @transaction.atomic
    def apply_override(self, on_date, is_available, shifts=None, reason=''):
        on_date = parse_date(on_date)
        shifts = normalize_shifts(shifts or [], require_types=True) if is_available else []

        override, created = DateOverride.objects.update_or_create(
            availability=self.availability,
            date=on_date,
            defaults={
                'is_available': bool(is_available),
                'shifts': shifts,
                'reason': reason or '',
            }
        )
        logger.info(
            f"Override {'added' if created else 'replaced'} for availability "
            f"{self.availability.pk} on {on_date} (available={override.is_available})"
        )
        return override

    @transaction.atomic
    def remove_override(self, on_date):
        on_date = parse_date(on_date)
        deleted, _ = DateOverride.objects.filter(availability=self.availability, date=on_date).delete()
        if not deleted:
            raise NotFound('Override not found for the specified date')
        logger.info(f"Override removed for availability {self.availability.pk} on {on_date}")

    @transaction.atomic
    def apply_partial_override(self, on_date, block_start, block_end, reason=''):
        """
        Block a window out of the day's shifts. Shifts fully inside the block
        are dropped, shifts containing it are split, edge overlaps are trimmed.
        """
        on_date = parse_date(on_date)
        block_from = parse_hhmm(block_start)
        block_to = parse_hhmm(block_end)
        if block_to <= block_from:
            raise InvalidInput('Block end must be after block start')

        base = self.effective_shifts(on_date)
        if not base:
            raise NoAvailability(f"No shifts to block on {on_date}")

        remaining = []
        for shift in base:
            start = parse_hhmm(shift['start_time'])
            end = parse_hhmm(shift['end_time'])
            types = [dict(entry) for entry in shift.get('consultation_types') or []]

            if block_to <= start or block_from >= end:
                pieces = [(start, end)]
            elif block_from <= start and block_to >= end:
                pieces = []
            elif block_from > start and block_to < end:
                pieces = [(start, block_from), (block_to, end)]
            elif block_from <= start:
                pieces = [(block_to, end)]
            else:
                pieces = [(start, block_from)]

            for piece_start, piece_end in pieces:
                remaining.append({
                    'start_time': format_minutes(piece_start),
                    'end_time': format_minutes(piece_end),
                    'is_active': True,
                    'consultation_types': [dict(entry) for entry in types],
                })

        override, _ = DateOverride.objects.update_or_create(
            availability=self.availability,
            date=on_date,
            defaults={
                'is_available': bool(remaining),
                'shifts': remaining,
                'reason': reason or f"Blocked {block_start}-{block_end}",
            }
        )
        logger.info(
            f"Blocked {block_start}-{block_end} on {on_date} for availability "
            f"{self.availability.pk}; {len(remaining)} shift(s) remain"
        )
        return override

    # ----------------------------------------------------------------
    # Reservations
    # ----------------------------------------------------------------

    def book_slot(self, on_date, start_time, consultation_type, appointment):
        """
        Reserve a slot for an appointment. Runs inside the caller's transaction;
        the partial unique constraint decides races the re-check cannot see.
        """
        on_date = parse_date(on_date)

        with transaction.atomic():
            self.availability = Availability.objects.select_for_update().get(pk=self.availability.pk)

            if not self.effective_shifts(on_date):
                raise NoAvailability(f"Doctor is not available on {on_date}")
            if not self.is_slot_available(on_date, start_time, consultation_type):
                raise SlotUnavailable(f"Slot is not available for {consultation_type} consultation")

            try:
                with transaction.atomic():
                    slot = BookedSlot.objects.create(
                        availability=self.availability,
                        doctor_id=self.availability.doctor_id,
                        appointment=appointment,
                        date=on_date,
                        start_time=start_time,
                        end_time=add_minutes(start_time, self.availability.slot_duration),
                        consultation_type=consultation_type,
                        status=SlotStatus.BOOKED,
                    )
            except IntegrityError:
                logger.warning(
                    f"Lost race for {on_date} {start_time} {consultation_type} "
                    f"(doctor {self.availability.doctor_id})"
                )
                raise SlotUnavailable(f"Slot is not available for {consultation_type} consultation")

        logger.info(f"Booked {on_date} {start_time} {consultation_type} for appointment {appointment.pk}")
        return slot

    @staticmethod
    def set_slot_status(slot, new_status):
        if new_status not in SlotStatus.values:
            raise InvalidInput(f"Unknown slot status '{new_status}'")
        if slot.status == new_status:
            return slot
        if new_status not in BookedSlot.ALLOWED_TRANSITIONS[slot.status]:
            raise StateViolation(f"Cannot transition from {slot.status} to {new_status}")

        slot.status = new_status
        slot.save(update_fields=['status', 'updated_at'])
        return slot

    @staticmethod
    @transaction.atomic
    def release_slot(appointment, status=SlotStatus.CANCELLED):
        """Move the appointment's booked slot(s) out of booked. Returns how many changed."""
        slots = list(
            BookedSlot.objects.select_for_update().filter(
                appointment=appointment, status=SlotStatus.BOOKED
            )
        )
        for slot in slots:
            AvailabilityService.set_slot_status(slot, status)
        if slots:
            logger.info(f"Released {len(slots)} slot(s) of appointment {appointment.pk} as {status}")
        return len(slots)
