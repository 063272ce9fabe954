from decimal import Decimal

from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status

from floor.exceptions import Forbidden, StateConflict
from floor.models import Tenant
from . import audit, permissions
from .authentication import ADMIN, KITCHEN, SUPER_ADMIN, WAITER, Actor
from .exceptions import api_exception_handler


class PermissionGateTests(SimpleTestCase):
    """Role defaults, tenant overrides and the admin bypass"""

    def test_waiter_defaults(self):
        self.assertTrue(permissions.has_permission(WAITER, permissions.ORDER_CLOSE))
        self.assertTrue(permissions.has_permission(WAITER, permissions.ORDER_PAYMENTS))
        self.assertFalse(permissions.has_permission(WAITER, permissions.KITCHEN_MARK_ALL_READY))

    def test_kitchen_defaults(self):
        self.assertTrue(permissions.has_permission(KITCHEN, permissions.KITCHEN_ITEM_STATUS))
        self.assertFalse(permissions.has_permission(KITCHEN, permissions.ORDER_ITEM_SERVE))

    def test_explicit_override_wins(self):
        overrides = {
            WAITER: {permissions.ORDER_DISCOUNT: False},
            KITCHEN: {permissions.ORDER_ITEM_SERVE: True},
        }
        self.assertFalse(permissions.has_permission(WAITER, permissions.ORDER_DISCOUNT, overrides))
        self.assertTrue(permissions.has_permission(WAITER, permissions.ORDER_CLOSE, overrides))
        self.assertTrue(permissions.has_permission(KITCHEN, permissions.ORDER_ITEM_SERVE, overrides))

    def test_non_boolean_override_falls_back_to_default(self):
        overrides = {WAITER: {permissions.ORDER_CLOSE: 'no'}}
        self.assertTrue(permissions.has_permission(WAITER, permissions.ORDER_CLOSE, overrides))

    def test_admins_ignore_overrides(self):
        overrides = {ADMIN: {permissions.ORDER_CLOSE: False}}
        for role in (ADMIN, SUPER_ADMIN):
            for key in permissions.PERMISSION_KEYS:
                self.assertTrue(permissions.has_permission(role, key, overrides))

    def test_unknown_role_has_nothing(self):
        self.assertFalse(permissions.has_permission('GUEST', permissions.ORDER_CLOSE))


class TenantPermissionTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(
            name="Bistro",
            permissions={WAITER: {permissions.ORDER_PAYMENTS: False}}
        )

    def test_tenant_overrides_are_read(self):
        self.assertFalse(permissions.tenant_has_permission(self.tenant.pk, WAITER, permissions.ORDER_PAYMENTS))
        self.assertTrue(permissions.tenant_has_permission(self.tenant.pk, WAITER, permissions.ORDER_CLOSE))

    def test_require_permission_raises_forbidden(self):
        actor = Actor(user_id='waiter-1', role=WAITER, tenant_id=self.tenant.pk)
        with self.assertLogs('epos.permissions', level='INFO'):
            with self.assertRaises(Forbidden):
                permissions.require_permission(actor, permissions.ORDER_PAYMENTS)

    def test_require_admin(self):
        with self.assertRaises(Forbidden):
            permissions.require_admin(Actor(user_id='w', role=WAITER, tenant_id=self.tenant.pk))
        permissions.require_admin(Actor(user_id='a', role=ADMIN, tenant_id=self.tenant.pk))


class ActorAuthenticationTests(APITestCase):
    """Requests must carry the shared key and a complete actor"""

    def setUp(self):
        self.tenant = Tenant.objects.create(name="Bistro")
        self.url = reverse('tables')
        self.headers = {
            'HTTP_X_API_KEY': 'demo',
            'HTTP_X_ACTOR_ID': 'waiter-1',
            'HTTP_X_ACTOR_ROLE': 'waiter',
            'HTTP_X_TENANT_ID': str(self.tenant.pk),
        }

    def test_valid_headers(self):
        response = self.client.get(self.url, **self.headers)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_missing_api_key(self):
        del self.headers['HTTP_X_API_KEY']
        response = self.client.get(self.url, **self.headers)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_wrong_api_key(self):
        self.headers['HTTP_X_API_KEY'] = 'nope'
        response = self.client.get(self.url, **self.headers)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_unknown_role(self):
        self.headers['HTTP_X_ACTOR_ROLE'] = 'GUEST'
        response = self.client.get(self.url, **self.headers)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_missing_tenant(self):
        del self.headers['HTTP_X_TENANT_ID']
        response = self.client.get(self.url, **self.headers)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class AuditEmitterTests(TestCase):
    def test_record_is_emitted_on_commit(self):
        actor = Actor(user_id='waiter-1', role=WAITER, tenant_id=7)

        with self.assertLogs('epos.audit', level='INFO') as logs:
            with self.captureOnCommitCallbacks(execute=True):
                record = audit.emit(actor, 'PAYMENT_ADDED', audit.ENTITY_PAYMENT, 3, {'amount': Decimal('9.50')})

        self.assertEqual(record.entity_id, '3')
        self.assertIn('"action": "PAYMENT_ADDED"', logs.output[0])
        self.assertIn('"amount": "9.50"', logs.output[0])

    def test_nothing_is_emitted_before_commit(self):
        actor = Actor(user_id='waiter-1', role=WAITER, tenant_id=7)
        with self.captureOnCommitCallbacks() as callbacks:
            audit.emit(actor, 'ORDER_NOTE_UPDATED', audit.ENTITY_ORDER, 1)
        self.assertEqual(len(callbacks), 1)


class ExceptionHandlerTests(SimpleTestCase):
    def test_floor_errors_render_their_code(self):
        response = api_exception_handler(StateConflict('ORDER_NOT_PAID'), {})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data, {'error': 'ORDER_NOT_PAID'})

    def test_database_errors_do_not_leak(self):
        with self.assertLogs('epos.exceptions', level='ERROR'):
            response = api_exception_handler(DatabaseError('relation "floor_order" is locked'), {})

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'error': 'INTERNAL_ERROR'})
