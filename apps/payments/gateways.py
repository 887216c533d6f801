# apps/payments/gateways.py
import logging
from decimal import Decimal

import razorpay
from django.conf import settings
from django.utils import timezone

from core.exceptions import ExternalFailure

logger = logging.getLogger(__name__)


def to_paise(amount):
    """Razorpay works in the smallest currency unit"""
    return int((Decimal(amount) * 100).quantize(Decimal('1')))


class RazorpayGateway:
    """Razorpay payment gateway integration"""

    name = 'razorpay'

    def __init__(self, api_key=None, api_secret=None, client=None):
        self.api_key = api_key or settings.RAZORPAY_KEY_ID
        self.api_secret = api_secret or settings.RAZORPAY_KEY_SECRET
        self.client = client or razorpay.Client(auth=(self.api_key, self.api_secret))

    def capture_payment(self, payment_id, amount, currency='INR'):
        """Capture an authorized payment"""
        try:
            captured = self.client.payment.capture(payment_id, to_paise(amount), {'currency': currency})
        except Exception as e:
            logger.error(f"Error capturing Razorpay payment {payment_id}: {str(e)}")
            raise ExternalFailure(f"Payment capture failed: {str(e)}") from e

        return {
            'payment_id': captured['id'],
            'status': captured['status'],
            'amount_captured': Decimal(captured['amount']) / 100,
            'captured_at': timezone.now().isoformat()
        }

    def refund_payment(self, payment_id, amount, reason='', speed='normal'):
        """Refund a captured payment, fully or partially"""
        refund_data = {
            'amount': to_paise(amount),
            'speed': speed,
            'notes': {
                'reason': reason
            }
        }

        try:
            refund = self.client.payment.refund(payment_id, refund_data)
        except Exception as e:
            logger.error(f"Error refunding Razorpay payment {payment_id}: {str(e)}")
            raise ExternalFailure(f"Payment refund failed: {str(e)}") from e

        logger.info(f"Razorpay refund {refund['id']} initiated for {payment_id}")
        return {
            'refund_id': refund['id'],
            'payment_id': refund.get('payment_id', payment_id),
            'amount': Decimal(refund['amount']) / 100,
            'currency': refund.get('currency'),
            'status': refund.get('status'),
            'notes': refund.get('notes', {})
        }


def get_gateway():
    return RazorpayGateway()
