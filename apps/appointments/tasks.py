# apps/appointments/tasks.py
import logging

from celery import shared_task

from .services import BookingCoordinator

logger = logging.getLogger(__name__)


@shared_task
def cleanup_pending_appointments():
    """Release inventory held by unpaid bookings (runs on the beat schedule)"""
    result = BookingCoordinator.cleanup_expired_appointments()
    if result['deleted']:
        logger.info(f"Expired {result['deleted']} pending appointment(s)")
    return result
