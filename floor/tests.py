import json
from decimal import Decimal
from unittest import mock

from django.contrib import admin
from django.contrib.auth.models import User
from django.db import DatabaseError
from django.db.models.query import QuerySet
from django.test import RequestFactory, TestCase
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status

from epos.authentication import ADMIN, KITCHEN, WAITER, Actor
from payment import billing
from . import lifecycle, topology
from .admin import OrderItemInline
from .exceptions import DomainRuleViolation, Forbidden, InvalidRequest, NotFound, StateConflict
from .models import MenuItem, Order, OrderItem, Table, Tenant


def make_actor(tenant, role=WAITER, user_id='waiter-1'):
    return Actor(user_id=user_id, role=role, tenant_id=tenant.pk)


class FloorTestMixin:
    """Tenant with three tables and a small menu"""

    def setUp(self):
        self.tenant = Tenant.objects.create(name="Bistro")
        self.t1 = Table.objects.create(tenant=self.tenant, name="T1")
        self.t2 = Table.objects.create(tenant=self.tenant, name="T2")
        self.t3 = Table.objects.create(tenant=self.tenant, name="T3")

        self.coffee = MenuItem.objects.create(
            tenant=self.tenant, name="Coffee", price=Decimal('10.00'), station=MenuItem.BAR
        )
        self.pizza = MenuItem.objects.create(
            tenant=self.tenant, name="Pizza", price=Decimal('12.00'), station=MenuItem.HOT
        )

        self.waiter = make_actor(self.tenant)
        self.kitchen = make_actor(self.tenant, role=KITCHEN, user_id='chef-1')
        self.admin = make_actor(self.tenant, role=ADMIN, user_id='admin-1')

    def open_order(self, table=None, lines=None):
        lines = lines or [{'menu_item_id': self.coffee.pk, 'quantity': 2}]
        return lifecycle.create_or_get_order(self.waiter, (table or self.t1).pk, lines)

    def assertTableStatus(self, table, expected):
        table.refresh_from_db()
        self.assertEqual(table.status, expected)


class DerivedOrderStatusTests(TestCase):
    """Order status derivation from item statuses"""

    def test_all_served_or_canceled_is_served(self):
        result = lifecycle.derive_order_status([OrderItem.SERVED, OrderItem.CANCELED], Order.NEW)
        self.assertEqual(result, Order.SERVED)

    def test_all_ready_is_ready(self):
        result = lifecycle.derive_order_status([OrderItem.READY, OrderItem.SERVED], Order.NEW)
        self.assertEqual(result, Order.READY)

    def test_pending_items_keep_current_status(self):
        self.assertEqual(lifecycle.derive_order_status([OrderItem.READY, OrderItem.NEW], Order.NEW), Order.NEW)
        self.assertEqual(
            lifecycle.derive_order_status([OrderItem.IN_PREPARATION], Order.READY), Order.READY
        )

    def test_no_items_keeps_current_status(self):
        self.assertEqual(lifecycle.derive_order_status([], Order.NEW), Order.NEW)


class CreateOrderTests(FloorTestMixin, TestCase):
    def test_create_order_occupies_table(self):
        """First items on a free table open a NEW order and occupy the table"""
        order = self.open_order()

        self.assertEqual(order.status, Order.NEW)
        self.assertEqual(order.table_id, self.t1.pk)
        self.assertEqual(order.waiter_id, 'waiter-1')
        self.assertEqual(order.payment_status, Order.UNPAID)

        items = list(order.items.all())
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].unit_price, Decimal('10.00'))
        self.assertEqual(items[0].status, OrderItem.NEW)
        self.assertFalse(items[0].is_complimentary)
        self.assertTableStatus(self.t1, Table.OCCUPIED)

    def test_second_create_appends_to_active_order(self):
        first = self.open_order()
        second = lifecycle.create_or_get_order(
            self.waiter, self.t1.pk, [{'menu_item_id': self.pizza.pk, 'quantity': 1}], note="no onions"
        )

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Order.objects.count(), 1)
        self.assertEqual(second.items.count(), 2)
        self.assertEqual(second.note, "no onions")

    def test_blank_note_keeps_existing_note(self):
        lifecycle.create_or_get_order(
            self.waiter, self.t1.pk, [{'menu_item_id': self.coffee.pk, 'quantity': 1}], note="birthday"
        )
        order = self.open_order()
        self.assertEqual(order.note, "birthday")

    def test_create_on_merged_table_appends_to_primary_order(self):
        order = self.open_order()
        lifecycle.merge_table(self.waiter, order.pk, self.t2.pk)

        appended = self.open_order(table=self.t2)

        self.assertEqual(appended.pk, order.pk)
        self.assertEqual(appended.table_id, self.t1.pk)
        self.assertEqual(Order.objects.count(), 1)

    def test_unknown_menu_item_writes_nothing(self):
        """A bad line fails the whole request before any row is written"""
        with self.assertRaises(InvalidRequest) as cm:
            self.open_order(lines=[
                {'menu_item_id': self.coffee.pk, 'quantity': 1},
                {'menu_item_id': 99999, 'quantity': 1},
            ])

        self.assertEqual(cm.exception.code, 'INVALID_MENU_ITEM')
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)
        self.assertTableStatus(self.t1, Table.FREE)

    def test_menu_item_of_other_tenant_is_invalid(self):
        other = Tenant.objects.create(name="Elsewhere")
        foreign = MenuItem.objects.create(tenant=other, name="Soup", price=Decimal('5.00'))

        with self.assertRaises(InvalidRequest) as cm:
            self.open_order(lines=[{'menu_item_id': foreign.pk, 'quantity': 1}])
        self.assertEqual(cm.exception.code, 'INVALID_MENU_ITEM')

    def test_unavailable_item_is_not_appended(self):
        order = self.open_order()
        self.pizza.is_available = False
        self.pizza.save()

        with self.assertRaises(DomainRuleViolation) as cm:
            self.open_order(lines=[
                {'menu_item_id': self.coffee.pk, 'quantity': 1},
                {'menu_item_id': self.pizza.pk, 'quantity': 1},
            ])

        self.assertEqual(cm.exception.code, 'ITEM_NOT_AVAILABLE')
        self.assertEqual(OrderItem.objects.filter(order_id=order.pk).count(), 1)

    def test_create_on_closed_table_fails(self):
        self.t3.status = Table.CLOSED
        self.t3.save()

        with self.assertRaises(DomainRuleViolation) as cm:
            self.open_order(table=self.t3)
        self.assertEqual(cm.exception.code, 'TABLE_CLOSED')
        self.assertEqual(Order.objects.count(), 0)

    def test_create_on_unknown_table_fails(self):
        other = Tenant.objects.create(name="Elsewhere")
        foreign_table = Table.objects.create(tenant=other, name="X1")

        with self.assertRaises(InvalidRequest) as cm:
            self.open_order(table=foreign_table)
        self.assertEqual(cm.exception.code, 'INVALID_TABLE')

    def test_closed_order_releases_table_for_new_order(self):
        order = self.open_order()
        Order.objects.filter(pk=order.pk).update(status=Order.CLOSED)

        fresh = self.open_order()
        self.assertNotEqual(fresh.pk, order.pk)
        self.assertEqual(fresh.status, Order.NEW)


    def test_create_retries_when_order_appears_on_table(self):
        """An order opened between the lookup and the table lock is picked up"""
        existing = self.open_order()
        real_lookup = topology.active_order_for
        calls = []

        def lookup(table_id, tenant_id, exclude_order_id=None):
            calls.append(table_id)
            if len(calls) == 1:
                return None
            return real_lookup(table_id, tenant_id, exclude_order_id)

        with mock.patch.object(topology, 'active_order_for', side_effect=lookup):
            with self.assertLogs('floor.lifecycle', level='INFO') as logs:
                order = self.open_order(lines=[{'menu_item_id': self.pizza.pk, 'quantity': 1}])

        self.assertEqual(order.pk, existing.pk)
        self.assertEqual(Order.objects.count(), 1)
        self.assertEqual(order.items.count(), 2)
        self.assertTrue(any('retrying' in line for line in logs.output))

    def test_create_gives_up_when_table_keeps_changing(self):
        existing = self.open_order()
        real_lookup = topology.active_order_for
        calls = []

        def lookup(table_id, tenant_id, exclude_order_id=None):
            calls.append(table_id)
            if len(calls) % 2:
                return None
            return real_lookup(table_id, tenant_id, exclude_order_id)

        with mock.patch.object(topology, 'active_order_for', side_effect=lookup):
            with self.assertRaises(StateConflict) as cm:
                self.open_order(lines=[{'menu_item_id': self.pizza.pk, 'quantity': 1}])

        self.assertEqual(cm.exception.code, 'TABLE_BUSY')
        self.assertEqual(len(calls), 2 * lifecycle.CLAIM_ATTEMPTS)
        self.assertEqual(Order.objects.count(), 1)
        self.assertEqual(OrderItem.objects.filter(order_id=existing.pk).count(), 1)


class TopologyTests(FloorTestMixin, TestCase):
    """Merge, unmerge and move keep occupancy in step with active orders"""

    def test_merge_links_and_occupies_secondary(self):
        order = self.open_order()
        order = lifecycle.merge_table(self.waiter, order.pk, self.t2.pk)

        self.assertEqual([t.pk for t in order.linked_tables.all()], [self.t2.pk])
        self.assertTableStatus(self.t2, Table.OCCUPIED)

    def test_merge_is_idempotent(self):
        order = self.open_order()
        lifecycle.merge_table(self.waiter, order.pk, self.t2.pk)
        order = lifecycle.merge_table(self.waiter, order.pk, self.t2.pk)

        self.assertEqual(order.linked_tables.count(), 1)

    def test_merge_onto_table_with_other_active_order(self):
        """Scenario E: the secondary table is busy and nothing changes"""
        order = self.open_order()
        self.open_order(table=self.t2)

        with self.assertRaises(StateConflict) as cm:
            lifecycle.merge_table(self.waiter, order.pk, self.t2.pk)

        self.assertEqual(cm.exception.code, 'SECONDARY_HAS_ACTIVE_ORDER')
        self.assertEqual(Order.objects.get(pk=order.pk).linked_tables.count(), 0)

    def test_merge_own_primary_table_is_rejected(self):
        order = self.open_order()
        with self.assertRaises(InvalidRequest) as cm:
            lifecycle.merge_table(self.waiter, order.pk, self.t1.pk)
        self.assertEqual(cm.exception.code, 'INVALID_SECONDARY_TABLE')

    def test_merge_closed_table_is_rejected(self):
        order = self.open_order()
        self.t3.status = Table.CLOSED
        self.t3.save()

        with self.assertRaises(DomainRuleViolation) as cm:
            lifecycle.merge_table(self.waiter, order.pk, self.t3.pk)
        self.assertEqual(cm.exception.code, 'TABLE_CLOSED')

    def test_merge_unknown_table(self):
        order = self.open_order()
        with self.assertRaises(NotFound):
            lifecycle.merge_table(self.waiter, order.pk, 99999)

    def test_unmerge_frees_table(self):
        order = self.open_order()
        lifecycle.merge_table(self.waiter, order.pk, self.t2.pk)

        order = lifecycle.unmerge_table(self.waiter, order.pk, self.t2.pk)

        self.assertEqual(order.linked_tables.count(), 0)
        self.assertTableStatus(self.t2, Table.FREE)
        self.assertTableStatus(self.t1, Table.OCCUPIED)

    def test_unmerge_of_unlinked_table_is_a_no_op(self):
        order = self.open_order()
        other = self.open_order(table=self.t2)

        order = lifecycle.unmerge_table(self.waiter, order.pk, self.t2.pk)

        self.assertEqual(order.linked_tables.count(), 0)
        # The other order still holds its table
        self.assertTableStatus(self.t2, Table.OCCUPIED)
        self.assertEqual(Order.objects.get(pk=other.pk).table_id, self.t2.pk)

    def test_move_frees_old_table_and_occupies_new(self):
        order = self.open_order()
        order = lifecycle.move_table(self.waiter, order.pk, self.t3.pk)

        self.assertEqual(order.table_id, self.t3.pk)
        self.assertTableStatus(self.t1, Table.FREE)
        self.assertTableStatus(self.t3, Table.OCCUPIED)

    def test_move_merged_order_is_rejected(self):
        """Scenario F"""
        order = self.open_order()
        lifecycle.merge_table(self.waiter, order.pk, self.t2.pk)

        with self.assertRaises(DomainRuleViolation) as cm:
            lifecycle.move_table(self.waiter, order.pk, self.t3.pk)

        self.assertEqual(cm.exception.code, 'CANNOT_MOVE_MERGED_ORDER')
        self.assertEqual(Order.objects.get(pk=order.pk).table_id, self.t1.pk)

    def test_move_to_occupied_table(self):
        order = self.open_order()
        self.open_order(table=self.t2)

        with self.assertRaises(StateConflict) as cm:
            lifecycle.move_table(self.waiter, order.pk, self.t2.pk)
        self.assertEqual(cm.exception.code, 'TARGET_TABLE_NOT_FREE')

    def test_move_to_table_marked_free_but_still_referenced(self):
        order = self.open_order()
        self.open_order(table=self.t2)
        Table.objects.filter(pk=self.t2.pk).update(status=Table.FREE)

        with self.assertRaises(StateConflict) as cm:
            lifecycle.move_table(self.waiter, order.pk, self.t2.pk)
        self.assertEqual(cm.exception.code, 'TARGET_TABLE_HAS_ACTIVE_ORDER')

    def test_kitchen_cannot_change_tables(self):
        order = self.open_order()
        with self.assertRaises(Forbidden):
            lifecycle.move_table(self.kitchen, order.pk, self.t3.pk)

    def test_occupancy_matches_active_orders(self):
        """After a mix of operations every table is OCCUPIED exactly when an active order references it"""
        first = self.open_order()
        second = self.open_order(table=self.t2)
        lifecycle.move_table(self.waiter, second.pk, self.t3.pk)
        lifecycle.merge_table(self.waiter, first.pk, self.t2.pk)
        lifecycle.unmerge_table(self.waiter, first.pk, self.t2.pk)

        for table in Table.objects.filter(tenant=self.tenant):
            referenced = topology.active_order_for(table.pk, self.tenant.pk) is not None
            self.assertEqual(table.status == Table.OCCUPIED, referenced, table.name)


class TableAdministrationTests(FloorTestMixin, TestCase):
    def test_admin_creates_free_table(self):
        table = topology.create_table(self.admin, "  Patio 1 ")
        self.assertEqual(table.name, "Patio 1")
        self.assertEqual(table.status, Table.FREE)
        self.assertEqual(table.tenant_id, self.tenant.pk)

    def test_waiter_cannot_create_table(self):
        with self.assertRaises(Forbidden):
            topology.create_table(self.waiter, "T9")

    def test_update_table_keeps_status(self):
        self.open_order()
        table = topology.update_table(self.admin, self.t1.pk, "Window", note="by the door")

        self.assertEqual(table.name, "Window")
        self.assertEqual(table.note, "by the door")
        self.assertTableStatus(self.t1, Table.OCCUPIED)

    def test_retire_and_reopen_table(self):
        table = topology.set_table_status(self.waiter, self.t3.pk, Table.CLOSED)
        self.assertEqual(table.status, Table.CLOSED)

        table = topology.set_table_status(self.waiter, self.t3.pk, Table.FREE)
        self.assertEqual(table.status, Table.FREE)

    def test_status_change_refused_while_order_active(self):
        self.open_order()
        with self.assertRaises(StateConflict) as cm:
            topology.set_table_status(self.waiter, self.t1.pk, Table.CLOSED)
        self.assertEqual(cm.exception.code, 'TABLE_HAS_ACTIVE_ORDER')

    def test_occupied_cannot_be_set_by_hand(self):
        with self.assertRaises(InvalidRequest) as cm:
            topology.set_table_status(self.waiter, self.t3.pk, Table.OCCUPIED)
        self.assertEqual(cm.exception.code, 'INVALID_TABLE_STATUS')


class ItemStatusTests(FloorTestMixin, TestCase):
    """Kitchen and floor transitions on order items"""

    def setUp(self):
        super().setUp()
        self.order = self.open_order(lines=[
            {'menu_item_id': self.coffee.pk, 'quantity': 2},
            {'menu_item_id': self.pizza.pk, 'quantity': 1},
        ])
        self.coffee_line, self.pizza_line = list(self.order.items.all())

    def test_mark_station_ready_only_touches_that_station(self):
        order = lifecycle.mark_station_ready(self.kitchen, self.order.pk, MenuItem.BAR)

        statuses = {item.menu_item_id: item.status for item in order.items.all()}
        self.assertEqual(statuses[self.coffee.pk], OrderItem.READY)
        self.assertEqual(statuses[self.pizza.pk], OrderItem.NEW)
        self.assertEqual(order.status, Order.NEW)

    def test_mark_all_ready_makes_order_ready(self):
        order = lifecycle.mark_station_ready(self.kitchen, self.order.pk)

        self.assertTrue(all(item.status == OrderItem.READY for item in order.items.all()))
        self.assertEqual(order.status, Order.READY)

    def test_waiter_cannot_mark_ready(self):
        with self.assertRaises(Forbidden):
            lifecycle.mark_station_ready(self.waiter, self.order.pk)

    def test_serve_requires_ready_item(self):
        with self.assertRaises(StateConflict) as cm:
            lifecycle.serve_item(self.waiter, self.order.pk, self.coffee_line.pk)
        self.assertEqual(cm.exception.code, 'INVALID_ITEM_STATE')

    def test_serving_every_item_serves_the_order(self):
        lifecycle.mark_station_ready(self.kitchen, self.order.pk)
        lifecycle.serve_item(self.waiter, self.order.pk, self.coffee_line.pk)
        order = lifecycle.serve_item(self.waiter, self.order.pk, self.pizza_line.pk)

        self.assertEqual(order.status, Order.SERVED)

    def test_any_status_may_be_set_directly(self):
        order = lifecycle.set_item_status(self.waiter, self.order.pk, self.coffee_line.pk, OrderItem.SERVED)
        self.assertEqual(order.items.get(pk=self.coffee_line.pk).status, OrderItem.SERVED)

        order = lifecycle.set_item_status(self.waiter, self.order.pk, self.coffee_line.pk, OrderItem.NEW)
        self.assertEqual(order.items.get(pk=self.coffee_line.pk).status, OrderItem.NEW)

    def test_kitchen_can_advance_but_not_serve(self):
        lifecycle.set_item_status(self.kitchen, self.order.pk, self.coffee_line.pk, OrderItem.IN_PREPARATION)

        with self.assertRaises(Forbidden):
            lifecycle.set_item_status(self.kitchen, self.order.pk, self.coffee_line.pk, OrderItem.SERVED)

    def test_kitchen_override_can_revoke_item_status(self):
        self.tenant.permissions = {KITCHEN: {'KITCHEN_ITEM_STATUS': False}}
        self.tenant.save()

        with self.assertRaises(Forbidden):
            lifecycle.set_item_status(self.kitchen, self.order.pk, self.coffee_line.pk, OrderItem.READY)

    def test_closed_item_status_cannot_be_set(self):
        with self.assertRaises(InvalidRequest) as cm:
            lifecycle.set_item_status(self.admin, self.order.pk, self.coffee_line.pk, OrderItem.CLOSED)
        self.assertEqual(cm.exception.code, 'INVALID_ITEM_STATUS')

    def test_served_order_does_not_regress(self):
        """Canceling an already served item keeps the order SERVED"""
        for line in (self.coffee_line, self.pizza_line):
            lifecycle.set_item_status(self.waiter, self.order.pk, line.pk, OrderItem.SERVED)

        order = lifecycle.set_item_status(self.waiter, self.order.pk, self.pizza_line.pk, OrderItem.CANCELED)
        self.assertEqual(order.status, Order.SERVED)

    def test_appending_to_served_order_keeps_it_served(self):
        for line in (self.coffee_line, self.pizza_line):
            lifecycle.set_item_status(self.waiter, self.order.pk, line.pk, OrderItem.SERVED)

        order = self.open_order()
        self.assertEqual(order.status, Order.SERVED)
        self.assertEqual(order.items.count(), 3)

    def test_unknown_item(self):
        with self.assertRaises(NotFound):
            lifecycle.serve_item(self.waiter, self.order.pk, 99999)


class CloseOrderTests(FloorTestMixin, TestCase):
    """Closing needs served items, sufficient payments and a confirmed bill"""

    def setUp(self):
        super().setUp()
        order = self.open_order(lines=[
            {'menu_item_id': self.coffee.pk, 'quantity': 2},
            {'menu_item_id': self.pizza.pk, 'quantity': 1},
        ])
        coffee_line, pizza_line = list(order.items.all())
        lifecycle.mark_station_ready(self.kitchen, order.pk)
        lifecycle.serve_item(self.waiter, order.pk, coffee_line.pk)
        lifecycle.set_item_status(self.waiter, order.pk, pizza_line.pk, OrderItem.CANCELED)
        self.order = Order.objects.get(pk=order.pk)

    def settle(self):
        billing.add_payment(self.waiter, self.order.pk, 'CASH', Decimal('20.00'))
        billing.request_bill(self.waiter, self.order.pk)
        billing.confirm_payment(self.waiter, self.order.pk)

    def test_close_served_paid_confirmed_order(self):
        """Scenario C"""
        lifecycle.merge_table(self.waiter, self.order.pk, self.t2.pk)
        self.settle()

        order = lifecycle.close_order(self.waiter, self.order.pk)

        self.assertEqual(order.status, Order.CLOSED)
        self.assertEqual(order.payment_status, Order.PAID)
        self.assertEqual(order.order_closed_by, 'waiter-1')
        self.assertIsNotNone(order.order_closed_at)
        self.assertTableStatus(self.t1, Table.FREE)
        self.assertTableStatus(self.t2, Table.FREE)

    def test_close_before_confirmation(self):
        """Scenario D"""
        billing.add_payment(self.waiter, self.order.pk, 'CASH', Decimal('20.00'))

        with self.assertRaises(StateConflict) as cm:
            lifecycle.close_order(self.waiter, self.order.pk)

        self.assertEqual(cm.exception.code, 'BILL_NOT_CONFIRMED')
        self.assertEqual(Order.objects.get(pk=self.order.pk).status, Order.SERVED)
        self.assertTableStatus(self.t1, Table.OCCUPIED)

    def test_close_unpaid_order(self):
        with self.assertRaises(StateConflict) as cm:
            lifecycle.close_order(self.waiter, self.order.pk)
        self.assertEqual(cm.exception.code, 'ORDER_NOT_PAID')

    def test_close_unserved_order(self):
        order = self.open_order(table=self.t3)
        with self.assertRaises(StateConflict) as cm:
            lifecycle.close_order(self.waiter, order.pk)
        self.assertEqual(cm.exception.code, 'ORDER_NOT_SERVED')

    def test_close_needs_permission(self):
        self.settle()
        self.tenant.permissions = {WAITER: {'ORDER_CLOSE': False}}
        self.tenant.save()

        with self.assertRaises(Forbidden):
            lifecycle.close_order(self.waiter, self.order.pk)
        lifecycle.close_order(self.admin, self.order.pk)

    def test_closed_order_rejects_mutations(self):
        self.settle()
        lifecycle.close_order(self.waiter, self.order.pk)

        with self.assertRaises(StateConflict) as cm:
            billing.add_payment(self.waiter, self.order.pk, 'CASH', Decimal('1.00'))
        self.assertEqual(cm.exception.code, 'ORDER_CLOSED')

        with self.assertRaises(StateConflict):
            lifecycle.merge_table(self.waiter, self.order.pk, self.t3.pk)

    def test_close_survives_failure_to_free_table(self):
        """A table that cannot be freed is logged and the order still closes"""
        self.settle()

        with mock.patch.object(QuerySet, 'update', side_effect=DatabaseError('table row locked')):
            with self.assertLogs('floor.topology', level='WARNING') as logs:
                order = lifecycle.close_order(self.waiter, self.order.pk)

        self.assertEqual(order.status, Order.CLOSED)
        self.assertEqual(Order.objects.get(pk=self.order.pk).status, Order.CLOSED)
        self.assertIn('Could not free table %s' % self.t1.pk, logs.output[0])
        self.assertTableStatus(self.t1, Table.OCCUPIED)

    def test_order_of_other_tenant_is_not_found(self):
        other = Tenant.objects.create(name="Elsewhere")
        with self.assertRaises(NotFound):
            lifecycle.close_order(make_actor(other), self.order.pk)


class AuditTests(FloorTestMixin, TestCase):
    """Audit records reach the emitter only for committed mutations"""

    def audit_records(self, logs):
        return [json.loads(record.getMessage()[len('audit '):]) for record in logs.records]

    def test_create_emits_order_created(self):
        with self.assertLogs('epos.audit', level='INFO') as logs:
            with self.captureOnCommitCallbacks(execute=True):
                order = self.open_order()

        records = self.audit_records(logs)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]['action'], 'ORDER_CREATED')
        self.assertEqual(records[0]['entity_id'], str(order.pk))
        self.assertEqual(records[0]['actor_user_id'], 'waiter-1')
        self.assertEqual(records[0]['metadata'], {'table_id': self.t1.pk, 'appended': False, 'item_count': 1})

    def test_move_emits_table_ids(self):
        order = self.open_order()
        with self.assertLogs('epos.audit', level='INFO') as logs:
            with self.captureOnCommitCallbacks(execute=True):
                lifecycle.move_table(self.waiter, order.pk, self.t2.pk)

        record = self.audit_records(logs)[0]
        self.assertEqual(record['action'], 'ORDER_MOVED')
        self.assertEqual(record['metadata'], {'from_table_id': self.t1.pk, 'to_table_id': self.t2.pk})

    def test_failed_mutation_emits_nothing(self):
        order = self.open_order()
        with self.captureOnCommitCallbacks() as callbacks:
            with self.assertRaises(StateConflict):
                lifecycle.close_order(self.waiter, order.pk)
        self.assertEqual(callbacks, [])


class OrderAPITests(FloorTestMixin, APITestCase):
    """Order and table endpoints"""

    def setUp(self):
        super().setUp()
        self.client.defaults['HTTP_X_API_KEY'] = 'demo'
        self.client.defaults['HTTP_X_ACTOR_ID'] = 'waiter-1'
        self.client.defaults['HTTP_X_ACTOR_ROLE'] = WAITER
        self.client.defaults['HTTP_X_TENANT_ID'] = str(self.tenant.pk)

    def test_create_order(self):
        url = reverse('orders')
        data = {
            'table_id': self.t1.pk,
            'items': [{'menu_item_id': self.coffee.pk, 'quantity': 2}],
            'note': 'window seat'
        }

        response = self.client.post(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['table_id'], self.t1.pk)
        self.assertEqual(response.data['status'], Order.NEW)
        self.assertEqual(response.data['note'], 'window seat')
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['items'][0]['menu_item_name'], 'Coffee')
        self.assertEqual(response.data['totals']['subtotal'], '20.00')
        self.assertEqual(response.data['linked_table_ids'], [])

    def test_create_order_without_items(self):
        response = self.client.post(reverse('orders'), {'table_id': self.t1.pk, 'items': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)

    def test_create_order_with_unknown_menu_item(self):
        data = {'table_id': self.t1.pk, 'items': [{'menu_item_id': 99999, 'quantity': 1}]}
        response = self.client.post(reverse('orders'), data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'error': 'INVALID_MENU_ITEM'})

    def test_list_active_orders(self):
        open_order = self.open_order()
        closed = self.open_order(table=self.t2)
        Order.objects.filter(pk=closed.pk).update(status=Order.CLOSED)

        response = self.client.get(reverse('orders'))
        self.assertEqual(len(response.data), 2)

        response = self.client.get(reverse('orders'), {'active': '1'})
        self.assertEqual([o['id'] for o in response.data], [open_order.pk])

    def test_get_order_of_other_tenant(self):
        other = Tenant.objects.create(name="Elsewhere")
        table = Table.objects.create(tenant=other, name="X1")
        item = MenuItem.objects.create(tenant=other, name="Soup", price=Decimal('5.00'))
        order = lifecycle.create_or_get_order(
            make_actor(other), table.pk, [{'menu_item_id': item.pk, 'quantity': 1}]
        )

        response = self.client.get(reverse('order_detail', kwargs={'order_id': order.pk}))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {'error': 'NOT_FOUND'})

    def test_serve_item_not_ready(self):
        order = self.open_order()
        item = order.items.first()
        url = reverse('serve_item', kwargs={'order_id': order.pk, 'item_id': item.pk})

        response = self.client.post(url)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data, {'error': 'INVALID_ITEM_STATE'})

    def test_item_status_endpoint(self):
        order = self.open_order()
        item = order.items.first()
        url = reverse('item_status', kwargs={'order_id': order.pk, 'item_id': item.pk})

        response = self.client.patch(url, {'status': OrderItem.READY}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['items'][0]['status'], OrderItem.READY)
        self.assertEqual(response.data['status'], Order.READY)

    def test_mark_ready_as_kitchen(self):
        order = self.open_order(lines=[
            {'menu_item_id': self.coffee.pk, 'quantity': 1},
            {'menu_item_id': self.pizza.pk, 'quantity': 1},
        ])
        url = reverse('mark_ready', kwargs={'order_id': order.pk})

        response = self.client.post(
            url, {'station': MenuItem.HOT}, format='json',
            HTTP_X_ACTOR_ID='chef-1', HTTP_X_ACTOR_ROLE=KITCHEN
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        statuses = {i['station']: i['status'] for i in response.data['items']}
        self.assertEqual(statuses, {MenuItem.BAR: OrderItem.NEW, MenuItem.HOT: OrderItem.READY})

    def test_merge_onto_busy_table(self):
        order = self.open_order()
        self.open_order(table=self.t2)
        url = reverse('merge_table', kwargs={'order_id': order.pk})

        response = self.client.post(url, {'secondary_table_id': self.t2.pk}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data, {'error': 'SECONDARY_HAS_ACTIVE_ORDER'})

    def test_merge_and_unmerge(self):
        order = self.open_order()

        response = self.client.post(
            reverse('merge_table', kwargs={'order_id': order.pk}), {'secondary_table_id': self.t2.pk}, format='json'
        )
        self.assertEqual(response.data['linked_table_ids'], [self.t2.pk])

        response = self.client.post(
            reverse('unmerge_table', kwargs={'order_id': order.pk}), {'table_id': self.t2.pk}, format='json'
        )
        self.assertEqual(response.data['linked_table_ids'], [])
        self.assertTableStatus(self.t2, Table.FREE)

    def test_move_merged_order(self):
        order = self.open_order()
        lifecycle.merge_table(self.waiter, order.pk, self.t2.pk)

        response = self.client.post(
            reverse('move_table', kwargs={'order_id': order.pk}), {'to_table_id': self.t3.pk}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data, {'error': 'CANNOT_MOVE_MERGED_ORDER'})

    def test_kitchen_cannot_close(self):
        order = self.open_order()
        response = self.client.post(
            reverse('close_order', kwargs={'order_id': order.pk}),
            HTTP_X_ACTOR_ID='chef-1', HTTP_X_ACTOR_ROLE=KITCHEN
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data, {'error': 'FORBIDDEN'})

    def test_update_note(self):
        order = self.open_order()
        response = self.client.patch(
            reverse('order_note', kwargs={'order_id': order.pk}), {'note': 'allergic to nuts'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['note'], 'allergic to nuts')

    def test_list_tables(self):
        self.open_order()
        response = self.client.get(reverse('tables'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [(t['name'], t['status']) for t in response.data],
            [('T1', Table.OCCUPIED), ('T2', Table.FREE), ('T3', Table.FREE)]
        )

    def test_create_table_as_admin(self):
        response = self.client.post(
            reverse('tables'), {'name': 'T4'}, format='json',
            HTTP_X_ACTOR_ID='admin-1', HTTP_X_ACTOR_ROLE=ADMIN
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Table.FREE)

        response = self.client.post(reverse('tables'), {'name': 'T5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_table_status_endpoint(self):
        url = reverse('table_status', kwargs={'table_id': self.t3.pk})

        response = self.client.patch(url, {'status': Table.CLOSED}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Table.CLOSED)

        response = self.client.patch(url, {'status': Table.OCCUPIED}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AdminTests(FloorTestMixin, TestCase):
    """Derived order state is visible in the admin but never editable there"""

    def setUp(self):
        super().setUp()
        self.request = RequestFactory().get('/admin/')
        self.request.user = User.objects.create_superuser('root', 'root@example.com', 'pw')
        self.order = self.open_order()

    def test_order_form_excludes_derived_fields(self):
        form = admin.site._registry[Order].get_form(self.request, self.order)

        for name in ('status', 'payment_status', 'billing_status', 'table', 'linked_tables',
                     'discount_type', 'discount_value', 'tenant'):
            self.assertNotIn(name, form.base_fields)
        self.assertIn('note', form.base_fields)

    def test_orders_cannot_be_added(self):
        self.assertFalse(admin.site._registry[Order].has_add_permission(self.request))

        self.client.force_login(self.request.user)
        response = self.client.get(reverse('admin:floor_order_add'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_order_items_are_read_only(self):
        inline = OrderItemInline(Order, admin.site)

        readonly = inline.get_readonly_fields(self.request, self.order)
        for name in ('menu_item', 'quantity', 'unit_price', 'status', 'is_complimentary'):
            self.assertIn(name, readonly)
        self.assertFalse(inline.has_add_permission(self.request, self.order))
        self.assertFalse(inline.can_delete)

    def test_change_page_leaves_order_untouched(self):
        self.client.force_login(self.request.user)
        response = self.client.get(reverse('admin:floor_order_change', args=[self.order.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.NEW)

    def test_table_status_is_read_only(self):
        form = admin.site._registry[Table].get_form(self.request, self.t1)
        self.assertNotIn('status', form.base_fields)
        self.assertIn('name', form.base_fields)
