# apps/wallets/services.py
import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from core.constants import (
    EarningStatus, TransactionType, TransactionStatus, ReferenceType
)
from core.exceptions import (
    InvalidInput, NotFound, StateViolation, InsufficientBalance
)
from .models import Wallet, Transaction, MONEY_PLACES

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')


def get_wallet(doctor):
    wallet, _ = Wallet.objects.get_or_create(doctor=doctor)
    return wallet


def get_wallet_for_update(doctor):
    """Return the doctor's wallet row locked for the current transaction"""
    get_wallet(doctor)
    return Wallet.objects.select_for_update().select_related('doctor__user').get(doctor=doctor)


def get_commission_rate(doctor):
    """The single source of the platform commission for a doctor"""
    return get_wallet(doctor).commission_rate


def doctor_share(amount, commission_rate):
    """amount x (100 - commission_rate) / 100, kept at four places"""
    share = Decimal(amount) * (HUNDRED - Decimal(commission_rate)) / HUNDRED
    return share.quantize(MONEY_PLACES)


class SettlementService:
    """
    Moves escrowed earnings into doctor wallets and reverses them on refund.
    """

    @staticmethod
    @transaction.atomic
    def release_earning(earning):
        from apps.payments.models import UpcomingEarning

        earning = UpcomingEarning.objects.select_for_update().get(pk=earning.pk)
        if earning.status != EarningStatus.PENDING:
            raise StateViolation(
                f"Earning for appointment {earning.appointment_id} is already {earning.status}"
            )

        wallet = get_wallet_for_update(earning.doctor)
        wallet.add_funds(
            earning.amount,
            'appointment',
            f"Payment credited for completed appointment {earning.appointment_id}",
            reference_id=earning.payment_id,
            reference_type=ReferenceType.PAYMENT,
        )

        earning.status = EarningStatus.RELEASED
        earning.released_at = timezone.now()
        earning.save(update_fields=['status', 'released_at', 'updated_at'])

        logger.info(
            f"Released earning {earning.pk} ({earning.amount}) to doctor {earning.doctor_id}"
        )
        return wallet, earning

    @staticmethod
    @transaction.atomic
    def refund_earning(earning, refund_amount, payment_amount, payment):
        """
        Reconcile an earning with a refund of refund_amount out of payment_amount.

        Pending earnings are cancelled (full refund) or shrunk by the refund
        ratio (partial). Released earnings are clawed back from the wallet.
        """
        from apps.payments.models import UpcomingEarning

        earning = UpcomingEarning.objects.select_for_update().get(pk=earning.pk)
        refund_amount = Decimal(refund_amount)
        payment_amount = Decimal(payment_amount)

        if earning.status == EarningStatus.PENDING:
            if refund_amount >= payment_amount:
                earning.status = EarningStatus.REFUNDED
                earning.notes = f"Refunded in full: {refund_amount}"
            else:
                ratio = (payment_amount - refund_amount) / payment_amount
                earning.amount = (earning.amount * ratio).quantize(MONEY_PLACES)
                earning.notes = f"Reduced by partial refund of {refund_amount}"
            earning.save(update_fields=['status', 'amount', 'notes', 'updated_at'])
            logger.info(f"Earning {earning.pk} reconciled with refund, now {earning.status} {earning.amount}")
            return {'earning_status': earning.status, 'clawback': None}

        if earning.status == EarningStatus.RELEASED:
            rate = get_commission_rate(earning.doctor)
            amount = doctor_share(refund_amount, rate)
            result = SettlementService.clawback(earning.doctor, amount, payment)
            return {'earning_status': earning.status, 'clawback': result}

        raise StateViolation(f"Earning {earning.pk} was already refunded")

    @staticmethod
    @transaction.atomic
    def clawback(doctor, amount, payment):
        """
        Take amount back from the wallet. When the balance cannot cover it the
        debt is recorded as outstanding and settled by later credits.
        """
        wallet = get_wallet_for_update(doctor)
        amount = Decimal(amount).quantize(MONEY_PLACES)

        wallet.total_earned -= amount

        if wallet.current_balance >= amount:
            wallet.current_balance -= amount
            wallet.save(update_fields=['current_balance', 'total_earned', 'updated_at'])
            Transaction.objects.create(
                user=doctor.user,
                type=TransactionType.CLAWBACK,
                amount=-amount,
                reference_id=payment.payment_number,
                reference_type=ReferenceType.PAYMENT,
                status=TransactionStatus.COMPLETED,
                notes=f"Clawback for refund on {payment.payment_number}",
            )
            logger.info(f"Clawed back {amount} from doctor {doctor.pk} for {payment.payment_number}")
            return {'amount': amount, 'deferred': False}

        wallet.outstanding_clawback += amount
        wallet.save(update_fields=['outstanding_clawback', 'total_earned', 'updated_at'])
        Transaction.objects.create(
            user=doctor.user,
            type=TransactionType.CLAWBACK_DEFERRED,
            amount=-amount,
            reference_id=payment.payment_number,
            reference_type=ReferenceType.PAYMENT,
            status=TransactionStatus.PENDING,
            metadata={'balance_at_refund': str(wallet.current_balance)},
            notes=f"Clawback deferred for refund on {payment.payment_number}",
        )
        logger.warning(
            f"Insufficient balance for clawback of {amount} from doctor {doctor.pk} "
            f"(balance {wallet.current_balance}); recorded as outstanding"
        )
        return {'amount': amount, 'deferred': True}


class WalletService:
    """Withdrawals and read models over a doctor's wallet"""

    @staticmethod
    @transaction.atomic
    def request_withdrawal(doctor, amount, description=''):
        try:
            amount = Decimal(str(amount))
        except ArithmeticError:
            raise InvalidInput("Invalid withdrawal amount")
        if amount <= 0:
            raise InvalidInput("Withdrawal amount must be positive")

        wallet = get_wallet_for_update(doctor)
        if amount > wallet.current_balance:
            raise InsufficientBalance(
                f"Requested {amount} exceeds available balance {wallet.current_balance.quantize(Decimal('0.01'))}"
            )

        txn = Transaction.objects.create(
            user=doctor.user,
            type=TransactionType.WITHDRAWAL_REQUEST,
            amount=-amount,
            reference_type=ReferenceType.WITHDRAWAL,
            status=TransactionStatus.PENDING,
            notes=description or 'Withdrawal request',
        )
        logger.info(f"Withdrawal {txn.transaction_id} of {amount} requested by doctor {doctor.pk}")
        return txn

    @staticmethod
    def process_withdrawal(doctor, transaction_id, admin_notes=''):
        """
        Settle a pending withdrawal request. An insufficient balance at this
        point fails the request only; the wallet stays untouched.
        """
        insufficient = False

        with transaction.atomic():
            wallet = get_wallet_for_update(doctor)
            try:
                txn = Transaction.objects.select_for_update().get(
                    transaction_id=transaction_id,
                    user=doctor.user,
                    type=TransactionType.WITHDRAWAL_REQUEST,
                )
            except Transaction.DoesNotExist:
                raise NotFound(f"Withdrawal request {transaction_id} not found")

            if txn.status != TransactionStatus.PENDING:
                raise StateViolation(f"Withdrawal {transaction_id} is already {txn.status}")

            amount = -txn.amount

            if wallet.current_balance < amount:
                txn.status = TransactionStatus.FAILED
                txn.metadata = {**txn.metadata, 'failure_reason': 'insufficient_balance'}
                txn.notes = f"{txn.notes}\nFailed: insufficient balance at processing time".strip()
                txn.save(update_fields=['status', 'metadata', 'notes', 'updated_at'])
                insufficient = True
            else:
                wallet.current_balance -= amount
                wallet.total_withdrawn += amount
                wallet.last_withdrawal_date = timezone.now()
                wallet.save(update_fields=[
                    'current_balance', 'total_withdrawn', 'last_withdrawal_date', 'updated_at'
                ])

                txn.status = TransactionStatus.COMPLETED
                if admin_notes:
                    txn.metadata = {**txn.metadata, 'admin_notes': admin_notes}
                txn.save(update_fields=['status', 'metadata', 'updated_at'])

                processed = Transaction.objects.create(
                    user=doctor.user,
                    type=TransactionType.WITHDRAWAL_PROCESSED,
                    amount=-amount,
                    reference_id=txn.transaction_id,
                    reference_type=ReferenceType.WITHDRAWAL,
                    status=TransactionStatus.COMPLETED,
                    notes=admin_notes or 'Withdrawal processed',
                )

        if insufficient:
            logger.warning(f"Withdrawal {transaction_id} failed: balance {wallet.current_balance} < {amount}")
            raise InsufficientBalance(f"Balance no longer covers withdrawal {transaction_id}")

        logger.info(f"Withdrawal {transaction_id} of {amount} processed for doctor {doctor.pk}")
        return {
            'withdrawal': txn,
            'processed': processed,
            'wallet': wallet,
        }

    @staticmethod
    def summary(doctor):
        """Balances plus money still held in escrow"""
        from apps.payments.models import UpcomingEarning

        wallet = get_wallet(doctor)
        upcoming = UpcomingEarning.objects.filter(
            doctor=doctor, status=EarningStatus.PENDING
        ).aggregate(total=Sum('amount'))['total'] or Decimal('0')

        return {
            'wallet': wallet,
            'upcoming_earnings': upcoming,
            'pending_withdrawals': Transaction.objects.filter(
                user=doctor.user,
                type=TransactionType.WITHDRAWAL_REQUEST,
                status=TransactionStatus.PENDING,
            ).count(),
        }
