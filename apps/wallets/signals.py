# apps/wallets/signals.py

from django.db.models.signals import pre_save, pre_delete
from django.dispatch import receiver

from .models import Transaction


@receiver(pre_save, sender=Transaction)
def protect_transaction_fields(sender, instance, **kwargs):
    """Ledger entries keep their amount and references once written"""
    if not instance.pk:
        return

    original = Transaction.objects.filter(pk=instance.pk).values(*Transaction.IMMUTABLE_FIELDS).first()
    if original is None:
        return

    for field in Transaction.IMMUTABLE_FIELDS:
        if getattr(instance, field) != original[field]:
            raise ValueError(f"Cannot change '{field}' of transaction {instance.transaction_id}")


@receiver(pre_delete, sender=Transaction)
def prevent_transaction_deletion(sender, instance, **kwargs):
    raise ValueError("Ledger transactions cannot be deleted")
