# apps/appointments/admin.py
from django.contrib import admin
from .models import Appointment, AppointmentReschedule


class AppointmentRescheduleInline(admin.TabularInline):
    model = AppointmentReschedule
    extra = 0
    can_delete = False
    readonly_fields = ('previous_date', 'previous_start_time', 'new_date', 'new_start_time',
                       'rescheduled_by', 'actor_role', 'reason', 'created_at')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('appointment_id', 'patient', 'doctor', 'date', 'start_time',
                    'consultation_type', 'status', 'rating')
    list_filter = ('status', 'consultation_type', 'date')
    search_fields = ('appointment_id', 'patient__email', 'doctor__user__full_name')
    readonly_fields = ('appointment_id', 'created_at', 'updated_at', 'reviewed_at', 'cancelled_at')
    raw_id_fields = ('patient', 'doctor', 'cancelled_by')
    inlines = [AppointmentRescheduleInline]
