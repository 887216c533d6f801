# apps/wallets/admin.py

from django.contrib import admin
from .models import Wallet, Transaction


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'current_balance', 'total_earned', 'total_withdrawn',
                    'commission_rate', 'outstanding_clawback', 'last_payment_date')
    search_fields = ('doctor__doctor_id', 'doctor__user__email', 'doctor__user__full_name')
    readonly_fields = ('current_balance', 'total_earned', 'total_withdrawn', 'total_spent',
                       'outstanding_clawback', 'last_payment_date', 'last_withdrawal_date',
                       'created_at', 'updated_at')
    raw_id_fields = ('doctor',)


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ('transaction_id', 'user', 'type', 'amount', 'status', 'reference_type',
                    'reference_id', 'created_at')
    list_filter = ('type', 'status', 'reference_type')
    search_fields = ('transaction_id', 'reference_id', 'user__email')
    readonly_fields = ('transaction_id', 'user', 'type', 'amount', 'reference_id',
                       'reference_type', 'created_at', 'updated_at')

    def has_delete_permission(self, request, obj=None):
        return False
