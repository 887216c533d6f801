# apps/doctors/admin.py

from django.contrib import admin
from .models import Doctor


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('doctor_id', 'full_name', 'specialization', 'clinic_consultation_fee',
                    'video_consultation_fee', 'average_rating', 'is_active')
    list_filter = ('specialization', 'is_active')
    search_fields = ('doctor_id', 'user__email', 'user__full_name')
    readonly_fields = ('doctor_id', 'average_rating', 'total_ratings',
                       'created_at', 'updated_at', 'created_by', 'updated_by')
    raw_id_fields = ('user',)
