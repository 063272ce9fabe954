from dataclasses import dataclass

from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from django.conf import settings

SUPER_ADMIN = 'SUPER_ADMIN'
ADMIN = 'ADMIN'
WAITER = 'WAITER'
KITCHEN = 'KITCHEN'

ROLES = (SUPER_ADMIN, ADMIN, WAITER, KITCHEN)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as vouched for by the session gateway"""

    user_id: str
    role: str
    tenant_id: int

    is_authenticated = True

    @property
    def is_admin(self):
        return self.role in (SUPER_ADMIN, ADMIN)


class ActorAuthentication(BaseAuthentication):
    """
    Trust the actor headers set by the session gateway.

    The gateway proves itself with the shared X-API-Key and forwards the
    resolved user as X-Actor-Id, X-Actor-Role and X-Tenant-Id.
    """

    def authenticate(self, request):
        api_key = request.META.get('HTTP_X_API_KEY')

        if not api_key:
            return None

        expected_api_key = getattr(settings, 'API_KEY', 'demo')

        if api_key != expected_api_key:
            raise AuthenticationFailed('Invalid API key')

        user_id = request.META.get('HTTP_X_ACTOR_ID', '').strip()
        role = request.META.get('HTTP_X_ACTOR_ROLE', '').strip().upper()
        tenant_header = request.META.get('HTTP_X_TENANT_ID', '').strip()

        if not user_id:
            raise AuthenticationFailed('Missing actor id')
        if role not in ROLES:
            raise AuthenticationFailed('Unknown actor role')
        if not tenant_header.isdigit():
            raise AuthenticationFailed('Missing or malformed tenant id')

        return (Actor(user_id=user_id, role=role, tenant_id=int(tenant_header)), api_key)

    def authenticate_header(self, request):
        return 'X-API-Key'
