# core/exceptions.py

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class BookingError(APIException):
    """Base class for booking and settlement errors"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request could not be processed.'
    default_code = 'booking_error'


class InvalidInput(BookingError):
    default_detail = 'Invalid input.'
    default_code = 'invalid_input'


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class NoAvailability(NotFound):
    default_detail = 'No availability configured for this date.'
    default_code = 'no_availability'


class Conflict(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflicting request.'
    default_code = 'conflict'


class SlotUnavailable(Conflict):
    default_detail = 'Slot is not available.'
    default_code = 'slot_unavailable'


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You are not allowed to perform this action.'
    default_code = 'forbidden'


class StateViolation(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Operation not allowed in the current state.'
    default_code = 'state_violation'


class InsufficientBalance(BookingError):
    default_detail = 'Insufficient balance.'
    default_code = 'insufficient_balance'


class ExternalFailure(BookingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Payment gateway request failed.'
    default_code = 'external_failure'


def api_exception_handler(exc, context):
    """DRF handler that adds the machine-readable code to booking errors"""
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, BookingError):
        response.data['code'] = exc.get_codes()
    return response
