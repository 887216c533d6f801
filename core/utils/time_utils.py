# core/utils/time_utils.py
import re
from datetime import date, datetime, timedelta

from django.utils import timezone

from core.exceptions import InvalidInput

TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def parse_hhmm(value):
    """Convert an HH:MM string into minutes after midnight"""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise InvalidInput(f"Invalid time '{value}'. Use HH:MM (24-hour)")
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)


def format_minutes(total_minutes):
    """Convert minutes after midnight back to HH:MM"""
    total_minutes = total_minutes % (24 * 60)
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def add_minutes(value, minutes):
    return format_minutes(parse_hhmm(value) + minutes)


def parse_date(value):
    """
    Accepts a date, a datetime or an ISO string (YYYY-MM-DD or a full
    timestamp, whose time-of-day is ignored).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.strptime(value[:10], '%Y-%m-%d').date()
        except ValueError:
            pass
    raise InvalidInput(f"Invalid date '{value}'. Use YYYY-MM-DD")


def weekday_name(value):
    return DAY_NAMES[value.weekday()]


def slot_datetime(on_date, start_time):
    """Aware datetime for a slot start in the current timezone"""
    minutes = parse_hhmm(start_time)
    naive = datetime.combine(on_date, datetime.min.time()) + timedelta(minutes=minutes)
    return timezone.make_aware(naive, timezone.get_current_timezone())
