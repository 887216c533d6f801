# apps/wallets/models.py
import logging
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone

from core.constants import (
    TransactionType, TransactionStatus, ReferenceType
)
from core.mixins.audit_fields import TimestampedMixin

logger = logging.getLogger(__name__)

MONEY_PLACES = Decimal('0.0001')


def default_commission_rate():
    return Decimal(str(settings.DEFAULT_COMMISSION_RATE))


class Wallet(TimestampedMixin):
    """Spendable balance of a doctor. One per doctor."""

    doctor = models.OneToOneField(
        'doctors.Doctor',
        on_delete=models.CASCADE,
        related_name='wallet'
    )

    current_balance = models.DecimalField(max_digits=14, decimal_places=4, default=0)
    total_earned = models.DecimalField(max_digits=14, decimal_places=4, default=0)
    total_withdrawn = models.DecimalField(max_digits=14, decimal_places=4, default=0)
    total_spent = models.DecimalField(max_digits=14, decimal_places=4, default=0)

    # Percentage kept by the platform on every captured payment
    commission_rate = models.DecimalField(max_digits=5, decimal_places=2, default=default_commission_rate)

    # Clawback owed by the doctor that the balance could not cover yet
    outstanding_clawback = models.DecimalField(max_digits=14, decimal_places=4, default=0)

    last_payment_date = models.DateTimeField(null=True, blank=True)
    last_withdrawal_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'wallets'

    def __str__(self):
        return f"Wallet of {self.doctor} ({self.current_balance})"

    def add_funds(self, amount, source, description, reference_id=None,
                  reference_type=ReferenceType.PAYMENT):
        """
        Credit the wallet and write the matching doctor_credit transaction.

        The wallet row must already be locked by the caller (select_for_update)
        and the call must share the caller's atomic block, so the credit commits
        together with whatever released the money.

        Outstanding clawback is settled out of the credit before the remainder
        reaches current_balance.
        """
        amount = Decimal(amount).quantize(MONEY_PLACES)
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        with transaction.atomic():
            settled = min(amount, self.outstanding_clawback)

            self.current_balance += amount - settled
            self.total_earned += amount
            self.outstanding_clawback -= settled
            self.last_payment_date = timezone.now()
            self.save(update_fields=[
                'current_balance', 'total_earned', 'outstanding_clawback',
                'last_payment_date', 'updated_at'
            ])

            credit = Transaction.objects.create(
                user=self.doctor.user,
                type=TransactionType.DOCTOR_CREDIT,
                amount=amount,
                reference_id=str(reference_id) if reference_id else '',
                reference_type=reference_type,
                status=TransactionStatus.COMPLETED,
                metadata={'source': source},
                notes=description,
            )

            if settled > 0:
                self._settle_deferred_clawback(settled, credit)

        return credit

    def _settle_deferred_clawback(self, settled, credit):
        Transaction.objects.create(
            user=self.doctor.user,
            type=TransactionType.CLAWBACK,
            amount=-settled,
            reference_id=credit.transaction_id,
            reference_type=ReferenceType.PAYMENT,
            status=TransactionStatus.COMPLETED,
            metadata={'deferred': True},
            notes='Outstanding clawback settled from credit',
        )
        logger.info(
            f"Settled {settled} of outstanding clawback for doctor {self.doctor_id}; "
            f"remaining {self.outstanding_clawback}"
        )

        if self.outstanding_clawback == 0:
            deferred = Transaction.objects.filter(
                user=self.doctor.user,
                type=TransactionType.CLAWBACK_DEFERRED,
                status=TransactionStatus.PENDING,
            )
            for txn in deferred:
                txn.status = TransactionStatus.COMPLETED
                txn.save(update_fields=['status', 'updated_at'])


def generate_transaction_id():
    return f"TXN-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:10].upper()}"


class Transaction(TimestampedMixin):
    """
    Money movement ledger entry. Amount is negative for deductions.

    Only status, notes and metadata may change after the row is written.
    """

    IMMUTABLE_FIELDS = ('user_id', 'type', 'amount', 'reference_id', 'reference_type')

    transaction_id = models.CharField(max_length=40, unique=True, default=generate_transaction_id, editable=False)
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='transactions'
    )
    type = models.CharField(max_length=30, choices=TransactionType.choices)
    amount = models.DecimalField(max_digits=14, decimal_places=4)

    reference_id = models.CharField(max_length=50, blank=True)
    reference_type = models.CharField(max_length=20, choices=ReferenceType.choices, blank=True)

    status = models.CharField(
        max_length=20, choices=TransactionStatus.choices, default=TransactionStatus.PENDING
    )
    metadata = models.JSONField(default=dict, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'wallet_transactions'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'type']),
            models.Index(fields=['reference_type', 'reference_id']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.transaction_id} {self.type} {self.amount}"
