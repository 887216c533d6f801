# apps/accounts/authentication.py

from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from django.utils.translation import gettext_lazy as _


class ActiveUserJWTAuthentication(JWTAuthentication):
    """
    Rejects disabled accounts and tokens issued before the user's role changed.
    """

    def get_user(self, validated_token):
        user = super().get_user(validated_token)

        if not user.is_active:
            raise AuthenticationFailed(_('User account is disabled.'), code='user_inactive')

        role = validated_token.get('role')
        if role is not None and role != user.role:
            raise AuthenticationFailed(_('Role changed, please sign in again.'), code='role_changed')

        return user
