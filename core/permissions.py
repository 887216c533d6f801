# core/permissions.py

from rest_framework.permissions import BasePermission
from rest_framework import permissions
from .constants import UserRoles

class IsAuthenticatedAndActive(BasePermission):
    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and request.user.is_active
        )


class IsPatient(permissions.BasePermission):
    def has_permission(self, request, view):
        return request.user.role == UserRoles.PATIENT

class IsDoctor(permissions.BasePermission):
    def has_permission(self, request, view):
        return request.user.role == UserRoles.DOCTOR

class IsAdmin(permissions.BasePermission):
    def has_permission(self, request, view):
        return request.user.role == UserRoles.ADMIN or request.user.is_superuser

class IsDoctorOrAdmin(permissions.BasePermission):
    def has_permission(self, request, view):
        return (
            request.user.role in [UserRoles.DOCTOR, UserRoles.ADMIN]
            or request.user.is_superuser
        )

class IsOwningDoctorOrAdmin(permissions.BasePermission):
    """Object-level: the object's doctor is the requesting user, or an admin"""
    def has_object_permission(self, request, view, obj):
        if request.user.role == UserRoles.ADMIN or request.user.is_superuser:
            return True
        doctor = getattr(obj, 'doctor', None)
        return doctor is not None and doctor.user_id == request.user.id
