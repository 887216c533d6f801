from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from apps.doctors.models import Doctor
from .models import User


class DoctorProfileInline(admin.StackedInline):
    model = Doctor
    fk_name = 'user'
    can_delete = False
    extra = 0
    fields = ('specialization', 'qualification', 'clinic_consultation_fee',
              'video_consultation_fee', 'is_active')


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Patients, doctors and admins; doctors get their profile inline"""

    list_display = ('email', 'full_name', 'role', 'is_active', 'last_login', 'created_at')
    list_filter = ('role', 'is_active', 'is_superuser')
    search_fields = ('email', 'full_name', 'phone')
    ordering = ('-created_at',)

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        (_('Profile'), {'fields': ('full_name', 'phone', 'role')}),
        (_('Access'), {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups'),
        }),
        (_('Activity'), {
            'fields': ('last_login', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'full_name', 'role', 'password1', 'password2'),
        }),
    )

    readonly_fields = ('last_login', 'created_at', 'updated_at')

    def get_inlines(self, request, obj):
        if obj is not None and obj.is_doctor:
            return [DoctorProfileInline]
        return []
