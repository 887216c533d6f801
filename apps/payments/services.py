# apps/payments/services.py
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.utils import timezone

from apps.appointments.models import Appointment
from apps.notifications.services import NotificationService
from apps.wallets.models import Transaction, MONEY_PLACES
from apps.wallets.services import (
    SettlementService, get_commission_rate, doctor_share
)
from core.constants import (
    AppointmentStatus, PaymentStatus, PaymentMethods, RefundInitiator, RefundStatus,
    EarningStatus, TransactionType, TransactionStatus, ReferenceType, NotificationType
)
from core.exceptions import (
    InvalidInput, NotFound, Conflict, StateViolation
)
from .gateways import get_gateway
from .models import Payment, UpcomingEarning

logger = logging.getLogger(__name__)

OPEN_PAYMENT_STATUSES = [PaymentStatus.PENDING, PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED]
# Payments whose escrowed share can still be released
RELEASABLE_PAYMENT_STATUSES = [PaymentStatus.CAPTURED, PaymentStatus.PARTIALLY_REFUNDED]
CLOSED_APPOINTMENT_STATUSES = [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW]


def parse_amount(value):
    try:
        amount = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, TypeError):
        raise InvalidInput(f"Invalid amount '{value}'")
    if amount <= 0:
        raise InvalidInput("Amount must be positive")
    return amount


def _lock(payment):
    return Payment.objects.select_for_update().get(pk=payment.pk)


class PaymentLedger:
    """
    Payment state machine:

        pending -> authorized -> captured -> refunded | partially_refunded
        pending | authorized -> failed

    Capturing opens an escrowed UpcomingEarning for the doctor's share; the
    share reaches the wallet only through process_payment.
    """

    @staticmethod
    @transaction.atomic
    def create_payment(appointment, amount, method=PaymentMethods.ONLINE, status=PaymentStatus.PENDING,
                       gateway_payment_id='', gateway_order_id='', gateway_name='razorpay'):
        if status not in OPEN_PAYMENT_STATUSES:
            raise InvalidInput(f"Payment cannot be created as '{status}'")
        if method not in PaymentMethods.values:
            raise InvalidInput(f"Unknown payment method '{method}'")
        amount = parse_amount(amount)

        appointment = Appointment.objects.select_for_update().select_related('doctor').get(pk=appointment.pk)
        if appointment.status in CLOSED_APPOINTMENT_STATUSES:
            raise StateViolation(f"Appointment {appointment.appointment_id} is {appointment.status}")
        if Payment.objects.filter(appointment=appointment, status__in=OPEN_PAYMENT_STATUSES).exists():
            raise Conflict(f"Appointment {appointment.appointment_id} already has an open payment")
        # One escrowed earning per appointment, refunded or not
        partially_refunded = Payment.objects.filter(
            appointment=appointment, status=PaymentStatus.PARTIALLY_REFUNDED
        ).exists()
        if partially_refunded or UpcomingEarning.objects.filter(appointment=appointment).exists():
            raise Conflict(f"Appointment {appointment.appointment_id} was already paid for")

        now = timezone.now()
        payment = Payment.objects.create(
            appointment=appointment,
            doctor=appointment.doctor,
            patient=appointment.patient,
            amount=amount,
            method=method,
            status=status,
            gateway_name=gateway_name,
            gateway_payment_id=gateway_payment_id,
            gateway_order_id=gateway_order_id,
            authorized_at=now if status != PaymentStatus.PENDING else None,
            captured_at=now if status == PaymentStatus.CAPTURED else None,
        )

        Transaction.objects.create(
            user=appointment.patient,
            type=TransactionType.APPOINTMENT_PAYMENT,
            amount=amount,
            reference_id=payment.payment_number,
            reference_type=ReferenceType.PAYMENT,
            status=TransactionStatus.COMPLETED if status == PaymentStatus.CAPTURED else TransactionStatus.PENDING,
            notes=f"Payment for appointment {appointment.appointment_id}",
        )

        if status == PaymentStatus.CAPTURED:
            PaymentLedger._open_escrow(payment, appointment)

        logger.info(f"Payment {payment.payment_number} created ({status}) for {appointment.appointment_id}")
        return payment

    @staticmethod
    def _open_escrow(payment, appointment):
        """Create the pending earning once and confirm the appointment"""
        earning = UpcomingEarning.objects.filter(payment=payment).first()
        if earning is not None:
            return earning

        rate = get_commission_rate(payment.doctor)
        earning = UpcomingEarning.objects.create(
            doctor=payment.doctor,
            appointment=appointment,
            payment=payment,
            amount=doctor_share(payment.amount, rate),
            scheduled_date=appointment.date,
            status=EarningStatus.PENDING,
            notes=f"Pending earnings for appointment {appointment.appointment_id}",
        )

        if appointment.status == AppointmentStatus.PENDING:
            appointment.status = AppointmentStatus.CONFIRMED
            appointment.save(update_fields=['status', 'updated_at'])

        NotificationService.notify(
            payment.patient,
            NotificationType.PAYMENT_CONFIRMATION,
            'Payment received',
            f"Payment {payment.payment_number} of {payment.amount} confirmed for appointment "
            f"{appointment.appointment_id}",
            reference_id=payment.payment_number,
        )
        logger.info(f"Escrowed {earning.amount} for doctor {payment.doctor_id} at {rate}% commission")
        return earning

    @staticmethod
    @transaction.atomic
    def authorize(payment, gateway_order_id=''):
        payment = _lock(payment)
        if payment.status != PaymentStatus.PENDING:
            raise StateViolation(f"Cannot authorize a {payment.status} payment")

        payment.status = PaymentStatus.AUTHORIZED
        payment.authorized_at = timezone.now()
        if gateway_order_id:
            payment.gateway_order_id = gateway_order_id
        payment.save()
        logger.info(f"Payment {payment.payment_number} authorized")
        return payment

    @staticmethod
    def capture(payment, gateway_payment_id='', gateway=None):
        """
        Mark a payment captured. With a gateway the capture call is made first,
        outside the database transaction.
        """
        payment = Payment.objects.get(pk=payment.pk)
        if not payment.can_transition(PaymentStatus.CAPTURED):
            raise StateViolation(f"Cannot capture a {payment.status} payment")

        gateway_payment_id = gateway_payment_id or payment.gateway_payment_id
        if gateway is not None:
            if not gateway_payment_id:
                raise StateViolation("Payment gateway information missing")
            gateway.capture_payment(gateway_payment_id, payment.amount, payment.currency)

        with transaction.atomic():
            payment = _lock(payment)
            if not payment.can_transition(PaymentStatus.CAPTURED):
                raise StateViolation(f"Cannot capture a {payment.status} payment")

            now = timezone.now()
            payment.status = PaymentStatus.CAPTURED
            payment.captured_at = now
            payment.authorized_at = payment.authorized_at or now
            if gateway_payment_id:
                payment.gateway_payment_id = gateway_payment_id
            payment.save()

            for txn in Transaction.objects.filter(
                user=payment.patient,
                reference_id=payment.payment_number,
                type=TransactionType.APPOINTMENT_PAYMENT,
            ):
                txn.status = TransactionStatus.COMPLETED
                txn.save(update_fields=['status', 'updated_at'])

            appointment = Appointment.objects.select_for_update().get(pk=payment.appointment_id)
            PaymentLedger._open_escrow(payment, appointment)

        logger.info(f"Payment {payment.payment_number} captured")
        return payment

    @staticmethod
    @transaction.atomic
    def mark_failed(payment, reason=''):
        payment = _lock(payment)
        if not payment.can_transition(PaymentStatus.FAILED):
            raise StateViolation(f"Cannot fail a {payment.status} payment")

        payment.status = PaymentStatus.FAILED
        payment.failure_reason = reason
        payment.save()

        for txn in Transaction.objects.filter(
            user=payment.patient,
            reference_id=payment.payment_number,
            type=TransactionType.APPOINTMENT_PAYMENT,
        ):
            txn.status = TransactionStatus.FAILED
            txn.notes = f"{txn.notes}\nFailed: {reason}".strip()
            txn.save(update_fields=['status', 'notes', 'updated_at'])

        logger.info(f"Payment {payment.payment_number} failed: {reason}")
        return payment

    @staticmethod
    @transaction.atomic
    def process_payment(payment):
        """
        Release the escrowed share of a captured or partially refunded payment
        into the doctor's wallet.
        Rejected once the earning has left pending.
        """
        payment = _lock(payment)
        if payment.status not in RELEASABLE_PAYMENT_STATUSES:
            raise StateViolation('Payment must be captured before processing')

        earning = UpcomingEarning.objects.filter(payment=payment).first()
        if earning is None:
            raise NotFound(f"Upcoming earning for {payment.payment_number} not found")
        if earning.status != EarningStatus.PENDING:
            raise StateViolation(f"Payment {payment.payment_number} was already processed")

        wallet, earning = SettlementService.release_earning(earning)

        for txn in Transaction.objects.filter(
            user=payment.patient,
            reference_id=payment.payment_number,
            type=TransactionType.APPOINTMENT_PAYMENT,
        ).exclude(status=TransactionStatus.COMPLETED):
            txn.status = TransactionStatus.COMPLETED
            txn.save(update_fields=['status', 'updated_at'])

        platform_commission = (payment.amount * wallet.commission_rate / Decimal('100')).quantize(MONEY_PLACES)

        NotificationService.notify(
            payment.doctor.user,
            NotificationType.WALLET_CREDIT,
            'Wallet credited',
            f"{earning.amount.quantize(Decimal('0.01'))} credited for appointment {payment.appointment.appointment_id}",
            reference_id=payment.payment_number,
        )
        logger.info(
            f"Processed {payment.payment_number}: doctor share {earning.amount}, "
            f"commission {platform_commission}"
        )
        return {
            'doctor_share': earning.amount,
            'platform_commission': platform_commission,
            'wallet_balance': wallet.current_balance,
            'total_earned': wallet.total_earned,
        }

    @staticmethod
    def _check_refundable(payment, amount):
        if payment.status != PaymentStatus.CAPTURED:
            raise StateViolation('Payment must be captured before refunding')
        if payment.refund_status == RefundStatus.PROCESSED:
            raise StateViolation('Refund already processed')
        if amount > payment.amount:
            raise StateViolation('Refund amount cannot exceed payment amount')

    @staticmethod
    def process_refund(payment, amount=None, reason='', initiated_by=RefundInitiator.SYSTEM, gateway=None):
        """
        Refund a captured payment through the gateway, then record it locally.

        The gateway call happens before the local transaction. If it fails
        nothing local changes and the refund can be retried.
        """
        payment = Payment.objects.get(pk=payment.pk)
        amount = payment.amount if amount is None else parse_amount(amount)
        if initiated_by not in RefundInitiator.values:
            raise InvalidInput(f"Unknown refund initiator '{initiated_by}'")

        PaymentLedger._check_refundable(payment, amount)
        if not payment.gateway_payment_id:
            raise StateViolation('Payment gateway information missing')

        gateway = gateway or get_gateway()
        gateway_refund = gateway.refund_payment(payment.gateway_payment_id, amount, reason)

        try:
            with transaction.atomic():
                payment = _lock(payment)
                PaymentLedger._check_refundable(payment, amount)

                full = amount == payment.amount
                payment.status = PaymentStatus.REFUNDED if full else PaymentStatus.PARTIALLY_REFUNDED
                payment.refund_amount = amount
                payment.refund_reason = reason
                payment.refund_initiated_by = initiated_by
                payment.refund_status = RefundStatus.PROCESSED
                payment.gateway_refund_id = gateway_refund['refund_id']
                payment.refunded_at = timezone.now()
                payment.save()

                Transaction.objects.create(
                    user=payment.patient,
                    type=TransactionType.REFUND,
                    amount=amount,
                    reference_id=payment.payment_number,
                    reference_type=ReferenceType.PAYMENT,
                    status=TransactionStatus.COMPLETED,
                    metadata={'gateway_refund_id': gateway_refund['refund_id']},
                    notes=f"Refund for appointment {payment.appointment.appointment_id}: {reason}",
                )

                reconciliation = None
                earning = UpcomingEarning.objects.filter(payment=payment).first()
                if earning is not None:
                    reconciliation = SettlementService.refund_earning(earning, amount, payment.amount, payment)

                NotificationService.notify(
                    payment.patient,
                    NotificationType.REFUND_INITIATE,
                    'Refund initiated',
                    f"Refund of {amount} initiated for payment {payment.payment_number}",
                    reference_id=payment.payment_number,
                )
        except Exception:
            logger.error(
                f"Gateway refund {gateway_refund['refund_id']} succeeded but recording it "
                f"for {payment.payment_number} failed"
            )
            raise

        logger.info(f"Payment {payment.payment_number} {payment.status} ({amount}) by {initiated_by}")
        return {
            'payment': payment,
            'refund': gateway_refund,
            'earning': reconciliation,
        }

    @staticmethod
    def auto_refund(payment_id, reason='Appointment cancellation', gateway=None):
        """Full refund on behalf of the system"""
        payment = Payment.objects.filter(pk=payment_id).first()
        if payment is None:
            raise NotFound('Payment not found')
        if payment.status != PaymentStatus.CAPTURED:
            raise StateViolation('Only captured payments can be refunded')
        if payment.refund_status == RefundStatus.PROCESSED:
            raise StateViolation('Refund already processed')

        return PaymentLedger.process_refund(
            payment, payment.amount, reason, RefundInitiator.SYSTEM, gateway=gateway
        )
