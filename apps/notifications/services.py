# apps/notifications/services.py
import logging

from django.db import transaction

from .models import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Records notifications once the surrounding transaction commits"""

    @staticmethod
    def notify(user, notification_type, title, message, reference_id=''):
        def _create():
            Notification.objects.create(
                user=user,
                type=notification_type,
                title=title,
                message=message,
                reference_id=reference_id or '',
            )
            logger.info(f"Notification '{notification_type}' recorded for {user.email}")

        transaction.on_commit(_create)
