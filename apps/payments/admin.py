# apps/payments/admin.py
from django.contrib import admin
from .models import Payment, UpcomingEarning


class UpcomingEarningInline(admin.StackedInline):
    model = UpcomingEarning
    extra = 0
    can_delete = False
    readonly_fields = ('doctor', 'appointment', 'amount', 'status', 'scheduled_date', 'released_at', 'notes')


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('payment_number', 'appointment', 'patient', 'doctor', 'amount', 'method', 'status', 'created_at')
    list_filter = ('status', 'method', 'refund_status')
    search_fields = ('payment_number', 'gateway_payment_id', 'patient__email', 'appointment__appointment_id')
    readonly_fields = ('payment_number', 'status', 'amount', 'refund_amount', 'refund_status',
                       'gateway_refund_id', 'refunded_at', 'authorized_at', 'captured_at',
                       'created_at', 'updated_at')
    raw_id_fields = ('appointment', 'doctor', 'patient')
    inlines = [UpcomingEarningInline]


@admin.register(UpcomingEarning)
class UpcomingEarningAdmin(admin.ModelAdmin):
    list_display = ('appointment', 'doctor', 'amount', 'status', 'scheduled_date', 'released_at')
    list_filter = ('status',)
    search_fields = ('appointment__appointment_id', 'doctor__user__email')
    raw_id_fields = ('doctor', 'appointment', 'payment')
