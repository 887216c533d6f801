# apps/availability/admin.py
from django.contrib import admin
from .models import Availability, DateOverride, BookedSlot


class DateOverrideInline(admin.TabularInline):
    model = DateOverride
    extra = 0


@admin.register(Availability)
class AvailabilityAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'slot_duration', 'buffer_time', 'is_virtual',
                    'effective_from', 'effective_to', 'is_active')
    list_filter = ('is_active', 'is_virtual')
    search_fields = ('doctor__doctor_id', 'doctor__user__full_name')
    readonly_fields = ('created_at', 'updated_at', 'created_by', 'updated_by')
    raw_id_fields = ('doctor',)
    inlines = [DateOverrideInline]


@admin.register(BookedSlot)
class BookedSlotAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'date', 'start_time', 'end_time', 'consultation_type', 'status', 'appointment')
    list_filter = ('status', 'consultation_type', 'date')
    search_fields = ('appointment__appointment_id', 'doctor__user__full_name')
    raw_id_fields = ('availability', 'doctor', 'appointment')
