# apps/accounts/serializers.py

from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import User


class UserSerializer(serializers.ModelSerializer):
    doctor_profile = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'full_name', 'phone', 'role', 'is_active', 'doctor_profile', 'created_at']
        read_only_fields = fields

    def get_doctor_profile(self, obj):
        doctor = getattr(obj, 'doctor_profile', None)
        return doctor.pk if doctor else None


# -----------------------------
# JWT Token Serializer
# -----------------------------
class RoleTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    JWT pair carrying the user's role; the response includes the user.
    """

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['role'] = user.role
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        data['user'] = UserSerializer(self.user).data
        return data
