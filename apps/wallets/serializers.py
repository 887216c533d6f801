# apps/wallets/serializers.py

from decimal import Decimal

from rest_framework import serializers

from .models import Wallet, Transaction


class MoneyField(serializers.DecimalField):
    """Presentation rounding for four-place ledger amounts"""

    def __init__(self, **kwargs):
        kwargs.setdefault('max_digits', 14)
        kwargs.setdefault('decimal_places', 2)
        kwargs.setdefault('coerce_to_string', True)
        super().__init__(**kwargs)


class WalletSerializer(serializers.ModelSerializer):
    doctor_name = serializers.CharField(source='doctor.user.full_name', read_only=True)
    current_balance = MoneyField(read_only=True)
    total_earned = MoneyField(read_only=True)
    total_withdrawn = MoneyField(read_only=True)
    total_spent = MoneyField(read_only=True)
    outstanding_clawback = MoneyField(read_only=True)

    class Meta:
        model = Wallet
        fields = [
            'id', 'doctor', 'doctor_name', 'current_balance', 'total_earned',
            'total_withdrawn', 'total_spent', 'commission_rate',
            'outstanding_clawback', 'last_payment_date', 'last_withdrawal_date'
        ]
        read_only_fields = fields


class WalletSummarySerializer(serializers.Serializer):
    wallet = WalletSerializer()
    upcoming_earnings = MoneyField()
    pending_withdrawals = serializers.IntegerField()


class TransactionSerializer(serializers.ModelSerializer):
    amount = MoneyField(read_only=True)
    type_display = serializers.CharField(source='get_type_display', read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id', 'transaction_id', 'type', 'type_display', 'amount',
            'reference_id', 'reference_type', 'status', 'metadata', 'notes',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class WithdrawalRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class WithdrawalProcessSerializer(serializers.Serializer):
    admin_notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
