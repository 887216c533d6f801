# apps/payments/signals.py

from django.db.models.signals import pre_save
from django.dispatch import receiver

from core.constants import PaymentStatus
from .models import Payment


@receiver(pre_save, sender=Payment)
def validate_payment_update(sender, instance, **kwargs):
    """Guard the payment state machine and the amount of settled payments"""
    if not instance.pk:
        return

    original = Payment.objects.filter(pk=instance.pk).values('status', 'amount').first()
    if original is None:
        return

    if original['status'] != instance.status:
        allowed = Payment.ALLOWED_TRANSITIONS.get(original['status'], set())
        if instance.status not in allowed:
            raise ValueError(
                f"Cannot move payment {instance.payment_number} from {original['status']} to {instance.status}"
            )

    if original['status'] != PaymentStatus.PENDING and instance.amount != original['amount']:
        raise ValueError("Cannot change amount of a processed payment")
