from decimal import Decimal
from types import SimpleNamespace

from django.contrib import admin
from django.contrib.auth.models import User
from django.test import RequestFactory, SimpleTestCase, TestCase
from drf_spectacular.generators import SchemaGenerator
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status

from epos.authentication import KITCHEN, WAITER, Actor
from floor import lifecycle
from floor.exceptions import Forbidden, InvalidRequest, StateConflict
from floor.models import MenuItem, Order, Table, Tenant
from . import billing, rules
from .models import PaymentLine


def item(price, qty, status='NEW', complimentary=False):
    return SimpleNamespace(unit_price=Decimal(price), quantity=qty, status=status, is_complimentary=complimentary)


def payment(amount):
    return SimpleNamespace(amount=Decimal(amount))


class MoneyRuleTests(SimpleTestCase):
    """Subtotal, discount and payment status calculations"""

    def test_subtotal_skips_canceled_and_complimentary(self):
        items = [
            item('10.00', 2),
            item('4.50', 1, status='CANCELED'),
            item('3.00', 3, complimentary=True),
            item('1.25', 4, status='SERVED'),
        ]
        self.assertEqual(rules.subtotal(items), Decimal('25.00'))

    def test_half_off_fully_paid(self):
        """Scenario A: 20 subtotal, 50% off, 10 paid"""
        subtotal = rules.subtotal([item('10', 2)])
        discount = {'type': rules.PERCENT, 'value': Decimal('50')}
        paid = rules.payments_total([payment('10')])

        self.assertEqual(subtotal, Decimal('20'))
        self.assertEqual(rules.discount_amount(subtotal, discount), Decimal('10'))
        self.assertEqual(rules.amount_due(subtotal, discount), Decimal('10'))
        self.assertEqual(rules.payment_status(subtotal, discount, paid), rules.PAID)

    def test_half_off_partially_paid(self):
        """Scenario B: same order with only 5 paid"""
        discount = {'type': rules.PERCENT, 'value': Decimal('50')}
        paid = rules.payments_total([payment('5')])

        self.assertEqual(rules.payment_status(Decimal('20'), discount, paid), rules.PARTIALLY_PAID)

    def test_nothing_paid(self):
        self.assertEqual(rules.payment_status(Decimal('20'), None, Decimal('0')), rules.UNPAID)

    def test_nothing_due_is_paid(self):
        self.assertEqual(rules.payment_status(Decimal('0'), None, Decimal('0')), rules.PAID)
        discount = {'type': rules.AMOUNT, 'value': Decimal('20')}
        self.assertEqual(rules.payment_status(Decimal('20'), discount, Decimal('0')), rules.PAID)

    def test_overpayment_is_paid(self):
        self.assertEqual(rules.payment_status(Decimal('20'), None, Decimal('50')), rules.PAID)

    def test_rounding_noise_is_absorbed(self):
        self.assertEqual(rules.payment_status(Decimal('10'), None, Decimal('9.9999999999')), rules.PAID)
        self.assertEqual(rules.payment_status(Decimal('10'), None, Decimal('9.99')), rules.PARTIALLY_PAID)

    def test_discount_is_clamped_to_subtotal(self):
        amount = {'type': rules.AMOUNT, 'value': Decimal('50')}
        percent = {'type': rules.PERCENT, 'value': Decimal('150')}

        self.assertEqual(rules.discount_amount(Decimal('20'), amount), Decimal('20'))
        self.assertEqual(rules.discount_amount(Decimal('20'), percent), Decimal('20'))
        self.assertEqual(rules.amount_due(Decimal('20'), amount), Decimal('0'))

    def test_missing_or_unknown_discount(self):
        self.assertEqual(rules.discount_amount(Decimal('20'), None), Decimal('0'))
        self.assertEqual(rules.discount_amount(Decimal('20'), {'type': 'BOGUS', 'value': 5}), Decimal('0'))


class BillingTests(TestCase):
    """Billing operations keep payment_status in step with the order's rows"""

    def setUp(self):
        self.tenant = Tenant.objects.create(name="Bistro")
        self.table = Table.objects.create(tenant=self.tenant, name="T1")
        self.menu_item = MenuItem.objects.create(tenant=self.tenant, name="Steak", price=Decimal('10.00'))
        self.waiter = Actor(user_id='waiter-1', role=WAITER, tenant_id=self.tenant.pk)
        self.kitchen = Actor(user_id='chef-1', role=KITCHEN, tenant_id=self.tenant.pk)

        order = lifecycle.create_or_get_order(
            self.waiter, self.table.pk, [{'menu_item_id': self.menu_item.pk, 'quantity': 2}]
        )
        self.order_id = order.pk
        self.line = order.items.first()

    def test_scenario_a_paid(self):
        billing.set_discount(self.waiter, self.order_id, rules.PERCENT, Decimal('50'))
        order = billing.add_payment(self.waiter, self.order_id, PaymentLine.CASH, Decimal('10'))

        self.assertEqual(order.payment_status, Order.PAID)
        self.assertEqual(order.payments.count(), 1)

    def test_scenario_b_partially_paid(self):
        billing.set_discount(self.waiter, self.order_id, rules.PERCENT, Decimal('50'))
        order = billing.add_payment(self.waiter, self.order_id, PaymentLine.CASH, Decimal('5'))

        self.assertEqual(order.payment_status, Order.PARTIALLY_PAID)

    def test_discount_change_recomputes_payment_status(self):
        billing.set_discount(self.waiter, self.order_id, rules.PERCENT, Decimal('50'))
        billing.add_payment(self.waiter, self.order_id, PaymentLine.CARD, Decimal('10'))

        order = billing.set_discount(self.waiter, self.order_id, rules.AMOUNT, Decimal('0'))

        self.assertEqual(order.payment_status, Order.PARTIALLY_PAID)
        self.assertEqual(order.discount['type'], rules.AMOUNT)
        self.assertEqual(order.discount['updated_by_user_id'], 'waiter-1')

    def test_complimentary_item_drops_out_of_subtotal(self):
        order = billing.set_complimentary(self.waiter, self.order_id, self.line.pk, True)

        self.assertTrue(order.items.get(pk=self.line.pk).is_complimentary)
        self.assertEqual(order.payment_status, Order.PAID)

        order = billing.set_complimentary(self.waiter, self.order_id, self.line.pk, False)
        self.assertEqual(order.payment_status, Order.UNPAID)

    def test_overpayment_is_accepted(self):
        order = billing.add_payment(self.waiter, self.order_id, PaymentLine.MEAL_CARD, Decimal('100'))
        self.assertEqual(order.payment_status, Order.PAID)

    def test_invalid_payment_input(self):
        with self.assertRaises(InvalidRequest) as cm:
            billing.add_payment(self.waiter, self.order_id, 'CHEQUE', Decimal('5'))
        self.assertEqual(cm.exception.code, 'INVALID_PAYMENT_METHOD')

        with self.assertRaises(InvalidRequest) as cm:
            billing.add_payment(self.waiter, self.order_id, PaymentLine.CASH, Decimal('0'))
        self.assertEqual(cm.exception.code, 'INVALID_AMOUNT')

        self.assertEqual(PaymentLine.objects.count(), 0)

    def test_invalid_discount(self):
        with self.assertRaises(InvalidRequest) as cm:
            billing.set_discount(self.waiter, self.order_id, 'HALF', Decimal('5'))
        self.assertEqual(cm.exception.code, 'INVALID_DISCOUNT')

    def test_kitchen_cannot_take_payments(self):
        with self.assertRaises(Forbidden):
            billing.add_payment(self.kitchen, self.order_id, PaymentLine.CASH, Decimal('5'))

    def test_request_bill(self):
        order = billing.request_bill(self.waiter, self.order_id)

        self.assertEqual(order.billing_status, Order.BILL_REQUESTED)
        self.assertEqual(order.bill_requested_by, 'waiter-1')
        self.assertIsNotNone(order.bill_requested_at)

    def test_confirm_requires_full_payment(self):
        billing.add_payment(self.waiter, self.order_id, PaymentLine.CASH, Decimal('5'))

        with self.assertRaises(StateConflict) as cm:
            billing.confirm_payment(self.waiter, self.order_id)

        self.assertEqual(cm.exception.code, 'PAYMENT_NOT_COMPLETE')
        self.assertEqual(Order.objects.get(pk=self.order_id).billing_status, Order.BILLING_OPEN)

    def test_confirm_payment(self):
        billing.add_payment(self.waiter, self.order_id, PaymentLine.CASH, Decimal('20'))
        order = billing.confirm_payment(self.waiter, self.order_id)

        self.assertEqual(order.billing_status, Order.BILLING_PAID)
        self.assertEqual(order.payment_status, Order.PAID)
        self.assertEqual(order.payment_confirmed_by, 'waiter-1')


class PaymentAPITests(APITestCase):
    """Billing endpoints"""

    def setUp(self):
        self.tenant = Tenant.objects.create(name="Bistro")
        self.table = Table.objects.create(tenant=self.tenant, name="T1")
        self.menu_item = MenuItem.objects.create(tenant=self.tenant, name="Steak", price=Decimal('10.00'))
        waiter = Actor(user_id='waiter-1', role=WAITER, tenant_id=self.tenant.pk)
        self.order = lifecycle.create_or_get_order(
            waiter, self.table.pk, [{'menu_item_id': self.menu_item.pk, 'quantity': 2}]
        )

        self.client.defaults['HTTP_X_API_KEY'] = 'demo'
        self.client.defaults['HTTP_X_ACTOR_ID'] = 'waiter-1'
        self.client.defaults['HTTP_X_ACTOR_ROLE'] = WAITER
        self.client.defaults['HTTP_X_TENANT_ID'] = str(self.tenant.pk)

    def test_add_payment(self):
        url = reverse('add_payment', kwargs={'order_id': self.order.pk})

        response = self.client.post(url, {'method': 'CASH', 'amount': '12.50'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment_status'], Order.PARTIALLY_PAID)
        self.assertEqual(response.data['totals']['paid'], '12.50')
        self.assertEqual(response.data['payments'][0]['method'], 'CASH')
        self.assertEqual(response.data['payments'][0]['created_by_user_id'], 'waiter-1')

    def test_add_payment_rejects_negative_amount(self):
        url = reverse('add_payment', kwargs={'order_id': self.order.pk})

        response = self.client.post(url, {'method': 'CASH', 'amount': '-1.00'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(PaymentLine.objects.count(), 0)

    def test_confirm_before_paid(self):
        url = reverse('confirm_payment', kwargs={'order_id': self.order.pk})

        response = self.client.post(url)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data, {'error': 'PAYMENT_NOT_COMPLETE'})

    def test_discount_endpoint(self):
        url = reverse('order_discount', kwargs={'order_id': self.order.pk})

        response = self.client.post(url, {'type': 'PERCENT', 'value': '25'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['discount']['type'], 'PERCENT')
        self.assertEqual(response.data['totals']['discount_amount'], '5.00')
        self.assertEqual(response.data['totals']['due'], '15.00')

    def test_complimentary_endpoint(self):
        line = self.order.items.first()
        url = reverse('item_complimentary', kwargs={'order_id': self.order.pk, 'item_id': line.pk})

        response = self.client.post(url, {'is_complimentary': True}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['items'][0]['is_complimentary'])
        self.assertEqual(response.data['payment_status'], Order.PAID)

    def test_full_billing_flow(self):
        """Pay, request the bill, confirm and close a served order"""
        order_id = self.order.pk
        line = self.order.items.first()

        self.client.patch(
            reverse('item_status', kwargs={'order_id': order_id, 'item_id': line.pk}),
            {'status': 'SERVED'}, format='json'
        )
        self.client.post(reverse('add_payment', kwargs={'order_id': order_id}),
                         {'method': 'CARD', 'amount': '20.00'}, format='json')

        response = self.client.post(reverse('request_bill', kwargs={'order_id': order_id}))
        self.assertEqual(response.data['billing_status'], Order.BILL_REQUESTED)

        response = self.client.post(reverse('confirm_payment', kwargs={'order_id': order_id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['billing_status'], Order.BILLING_PAID)

        response = self.client.post(reverse('close_order', kwargs={'order_id': order_id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Order.CLOSED)

        self.table.refresh_from_db()
        self.assertEqual(self.table.status, Table.FREE)


class PaymentAdminTests(TestCase):
    def setUp(self):
        tenant = Tenant.objects.create(name="Bistro")
        table = Table.objects.create(tenant=tenant, name="T1")
        menu_item = MenuItem.objects.create(tenant=tenant, name="Steak", price=Decimal('10.00'))
        waiter = Actor(user_id='waiter-1', role=WAITER, tenant_id=tenant.pk)
        order = lifecycle.create_or_get_order(waiter, table.pk, [{'menu_item_id': menu_item.pk, 'quantity': 1}])
        billing.add_payment(waiter, order.pk, 'CASH', Decimal('4.00'))
        self.order_id = order.pk
        self.line = PaymentLine.objects.get(order_id=order.pk)

        self.user = User.objects.create_superuser('root', 'root@example.com', 'pw')
        self.request = RequestFactory().get('/admin/')
        self.request.user = self.user

    def test_payment_lines_are_view_only(self):
        model_admin = admin.site._registry[PaymentLine]

        self.assertTrue(model_admin.has_view_permission(self.request, self.line))
        self.assertFalse(model_admin.has_add_permission(self.request))
        self.assertFalse(model_admin.has_change_permission(self.request, self.line))
        self.assertFalse(model_admin.has_delete_permission(self.request, self.line))

    def test_delete_through_admin_is_refused(self):
        self.client.force_login(self.user)
        response = self.client.post(
            reverse('admin:payment_paymentline_delete', args=[self.line.pk]), {'post': 'yes'}
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(PaymentLine.objects.filter(pk=self.line.pk).exists())
        self.assertEqual(Order.objects.get(pk=self.order_id).payment_status, Order.PARTIALLY_PAID)


class PaymentSchemaTests(SimpleTestCase):
    def test_billing_operations_document_rule_violations(self):
        schema = SchemaGenerator().get_schema(request=None, public=True)

        billing_paths = [
            path for path in schema['paths']
            if path.rsplit('/', 2)[-2] in ('payments', 'request_bill', 'confirm_payment', 'discount', 'complimentary')
        ]
        self.assertEqual(len(billing_paths), 5)
        for path in billing_paths:
            responses = schema['paths'][path]['post']['responses']
            self.assertIn('422', responses, path)
            self.assertIn('409', responses, path)
