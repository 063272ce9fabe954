"""
Permission gate for floor operations.

A role's answer for a key is decided in two steps: an explicit boolean in the
tenant's override map wins, otherwise the role default applies. Admin roles
are allowed everything and never consult either table.
"""
import logging

from rest_framework.permissions import BasePermission

from floor.exceptions import Forbidden
from floor.models import Tenant
from .authentication import ADMIN, KITCHEN, ROLES, SUPER_ADMIN, WAITER

logger = logging.getLogger(__name__)

ORDER_PAYMENTS = 'ORDER_PAYMENTS'
ORDER_DISCOUNT = 'ORDER_DISCOUNT'
ORDER_COMPLIMENTARY = 'ORDER_COMPLIMENTARY'
ORDER_ITEM_CANCEL = 'ORDER_ITEM_CANCEL'
ORDER_ITEM_SERVE = 'ORDER_ITEM_SERVE'
ORDER_TABLES = 'ORDER_TABLES'
ORDER_CLOSE = 'ORDER_CLOSE'
KITCHEN_ITEM_STATUS = 'KITCHEN_ITEM_STATUS'
KITCHEN_MARK_ALL_READY = 'KITCHEN_MARK_ALL_READY'

PERMISSION_KEYS = (
    ORDER_PAYMENTS,
    ORDER_DISCOUNT,
    ORDER_COMPLIMENTARY,
    ORDER_ITEM_CANCEL,
    ORDER_ITEM_SERVE,
    ORDER_TABLES,
    ORDER_CLOSE,
    KITCHEN_ITEM_STATUS,
    KITCHEN_MARK_ALL_READY,
)

WAITER_KEYS = frozenset({
    ORDER_PAYMENTS,
    ORDER_DISCOUNT,
    ORDER_COMPLIMENTARY,
    ORDER_ITEM_CANCEL,
    ORDER_ITEM_SERVE,
    ORDER_TABLES,
    ORDER_CLOSE,
})

KITCHEN_KEYS = frozenset({
    KITCHEN_ITEM_STATUS,
    KITCHEN_MARK_ALL_READY,
})

DEFAULT_PERMISSIONS = {
    SUPER_ADMIN: {key: True for key in PERMISSION_KEYS},
    ADMIN: {key: True for key in PERMISSION_KEYS},
    WAITER: {key: key in WAITER_KEYS for key in PERMISSION_KEYS},
    KITCHEN: {key: key in KITCHEN_KEYS for key in PERMISSION_KEYS},
}


def has_permission(role, key, overrides=None):
    if role in (SUPER_ADMIN, ADMIN):
        return True
    if role not in ROLES:
        return False

    role_overrides = (overrides or {}).get(role)
    if isinstance(role_overrides, dict):
        value = role_overrides.get(key)
        if isinstance(value, bool):
            return value

    return DEFAULT_PERMISSIONS[role].get(key, False)


def tenant_overrides(tenant_id):
    overrides = Tenant.objects.filter(pk=tenant_id).values_list('permissions', flat=True).first()
    return overrides if isinstance(overrides, dict) else {}


def tenant_has_permission(tenant_id, role, key):
    if role in (SUPER_ADMIN, ADMIN):
        return True
    return has_permission(role, key, tenant_overrides(tenant_id))


def require_permission(actor, key):
    if not tenant_has_permission(actor.tenant_id, actor.role, key):
        logger.info("Denied %s to %s %s in tenant %s", key, actor.role, actor.user_id, actor.tenant_id)
        raise Forbidden()


def require_admin(actor):
    if not actor.is_admin:
        raise Forbidden()


class IsTenantActor(BasePermission):
    """
    Allows access only to requests authenticated by ActorAuthentication
    """

    def has_permission(self, request, view):
        return getattr(request.user, 'is_authenticated', False) and request.user.tenant_id is not None
