"""
Order lifecycle: creating orders, moving items through the kitchen, moving
orders between tables and closing them.

Every mutation runs in one transaction that locks the order row first, then
rebuilds the cached payment_status and status from the rows it just
changed. Permission checks happen before anything is read for writing.
"""
import logging

from django.db import transaction
from django.utils import timezone

from epos import audit
from epos.authentication import KITCHEN
from epos.permissions import (
    KITCHEN_ITEM_STATUS,
    KITCHEN_MARK_ALL_READY,
    ORDER_CLOSE,
    ORDER_ITEM_CANCEL,
    ORDER_ITEM_SERVE,
    ORDER_TABLES,
    require_permission,
)
from payment import rules
from . import topology
from .exceptions import DomainRuleViolation, InvalidRequest, NotFound, StateConflict
from .models import MenuItem, Order, OrderItem, Table

logger = logging.getLogger(__name__)

SETTABLE_ITEM_STATUSES = (
    OrderItem.NEW,
    OrderItem.IN_PREPARATION,
    OrderItem.READY,
    OrderItem.SERVED,
    OrderItem.CANCELED,
)

SERVED_STATES = frozenset({OrderItem.SERVED, OrderItem.CANCELED})
READY_STATES = frozenset({OrderItem.READY, OrderItem.SERVED, OrderItem.CANCELED})
PENDING_STATES = frozenset({OrderItem.NEW, OrderItem.IN_PREPARATION})

CLAIM_ATTEMPTS = 3


def derive_order_status(item_statuses, current):
    """
    Order status implied by its items.

    There is no order-level IN_PREPARATION: anything short of "all ready"
    leaves the current status as it is.
    """
    statuses = list(item_statuses)
    if statuses and all(s in SERVED_STATES for s in statuses):
        return Order.SERVED
    if statuses and all(s in READY_STATES for s in statuses):
        return Order.READY
    return current


def compute_payment_status(order):
    items = list(order.items.all())
    payments = list(order.payments.all())
    return rules.payment_status(rules.subtotal(items), order.discount, rules.payments_total(payments))


def refresh_derived_state(order):
    """Rebuild payment_status and status from the order's current rows"""
    order.payment_status = compute_payment_status(order)
    order.status = derive_order_status(order.items.values_list('status', flat=True), order.status)
    order.save(update_fields=['payment_status', 'status', 'updated_at'])
    return order


def load_order(tenant_id, order_id):
    """Fetch an order with everything the snapshot serializer reads"""
    order = (
        Order.objects
        .filter(pk=order_id, tenant_id=tenant_id)
        .select_related('table')
        .prefetch_related('items__menu_item', 'payments', 'linked_tables')
        .first()
    )
    if order is None:
        raise NotFound()
    return order


def list_orders(actor, active_only=False):
    orders = Order.objects.filter(tenant_id=actor.tenant_id)
    if active_only:
        orders = orders.exclude(status=Order.CLOSED)
    return orders.select_related('table').prefetch_related('items__menu_item', 'payments', 'linked_tables')


def lock_order(actor, order_id, allow_closed=False):
    order = Order.objects.select_for_update().filter(pk=order_id, tenant_id=actor.tenant_id).first()
    if order is None:
        raise NotFound()
    if order.is_closed and not allow_closed:
        raise StateConflict('ORDER_CLOSED')
    return order


def get_item(order, item_id):
    item = order.items.filter(pk=item_id).first()
    if item is None:
        raise NotFound()
    return item


def _resolve_menu_items(tenant_id, requested):
    menu = MenuItem.objects.in_bulk([r['menu_item_id'] for r in requested])
    resolved = []
    for line in requested:
        menu_item = menu.get(line['menu_item_id'])
        if menu_item is None or menu_item.tenant_id != tenant_id:
            raise InvalidRequest('INVALID_MENU_ITEM')
        if not menu_item.is_available:
            raise DomainRuleViolation('ITEM_NOT_AVAILABLE')
        resolved.append((menu_item, line))
    return resolved


class _TableChanged(Exception):
    pass


def _claim_table(actor, table_id):
    """
    Lock the table's active order (if any), then the table itself.

    Orders are locked before tables here as in every other mutation. The
    active order is looked up again once the table is locked; if another
    request opened, moved or closed one in between, the savepoint is rolled
    back, which releases both row locks, and the claim starts over.
    """
    for _ in range(CLAIM_ATTEMPTS):
        try:
            with transaction.atomic():
                order = None
                existing = topology.active_order_for(table_id, actor.tenant_id)
                if existing is not None:
                    order = Order.objects.select_for_update().get(pk=existing.pk)
                    if order.is_closed:
                        # Closed while we waited for its lock
                        order = None

                table = topology.lock_table(actor.tenant_id, table_id)
                if table is None:
                    raise InvalidRequest('INVALID_TABLE')

                current = topology.active_order_for(table_id, actor.tenant_id)
                current_id = current.pk if current is not None else None
                if current_id != (order.pk if order is not None else None):
                    raise _TableChanged()
                return order, table
        except _TableChanged:
            logger.info("Active order on table %s changed while claiming it, retrying", table_id)
    raise StateConflict('TABLE_BUSY')


def create_or_get_order(actor, table_id, items, note=None):
    """
    Add items to the active order on a table, opening one if there is none.

    The table's active order and the table row are both locked before
    anything is written, so concurrent waiters on one table end up on the
    same order.
    """
    if not items:
        raise InvalidRequest('INVALID_INPUT')
    note = (note or '').strip()

    if not Table.objects.filter(pk=table_id, tenant_id=actor.tenant_id).exists():
        raise InvalidRequest('INVALID_TABLE')

    with transaction.atomic():
        # All lines are checked before anything is written
        resolved = _resolve_menu_items(actor.tenant_id, items)

        order, table = _claim_table(actor, table_id)

        appended = order is not None
        if appended:
            if note:
                order.note = note
            if order.customer_id is None:
                order.customer_id = table.customer_id
            order.save(update_fields=['note', 'customer_id', 'updated_at'])
        else:
            if table.status == Table.CLOSED:
                raise DomainRuleViolation('TABLE_CLOSED')
            order = Order.objects.create(
                tenant_id=actor.tenant_id,
                table=table,
                waiter_id=actor.user_id,
                customer_id=table.customer_id,
                note=note or None,
                status=Order.NEW,
            )
            topology.occupy(table)

        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                menu_item=menu_item,
                unit_price=menu_item.price,
                quantity=line['quantity'],
                note=(line.get('note') or '').strip(),
                variant_id=line.get('variant_id') or None,
                modifier_option_ids=list(line.get('modifier_option_ids') or []),
                status=OrderItem.NEW,
                is_complimentary=False,
            )
            for menu_item, line in resolved
        ])

        refresh_derived_state(order)
        audit.emit(actor, 'ORDER_CREATED', audit.ENTITY_ORDER, order.pk, {
            'table_id': table.pk,
            'appended': appended,
            'item_count': len(resolved),
        })

    logger.info("Order %s on table %s now has %d new item(s)", order.pk, table.pk, len(resolved))
    return load_order(actor.tenant_id, order.pk)


def update_note(actor, order_id, note):
    with transaction.atomic():
        order = lock_order(actor, order_id)
        order.note = note
        order.save(update_fields=['note', 'updated_at'])
        audit.emit(actor, 'ORDER_NOTE_UPDATED', audit.ENTITY_ORDER, order.pk)
    return load_order(actor.tenant_id, order.pk)


def set_item_status(actor, order_id, item_id, status):
    """
    Set an item to any status directly.

    There is no successor check here: an authorized actor may move an item
    from any status to any other. Only the permission keys depend on the
    target status and on the actor being kitchen staff.
    """
    if status not in SETTABLE_ITEM_STATUSES:
        raise InvalidRequest('INVALID_ITEM_STATUS')
    if actor.role == KITCHEN:
        require_permission(actor, KITCHEN_ITEM_STATUS)
    if status == OrderItem.CANCELED:
        require_permission(actor, ORDER_ITEM_CANCEL)
    if status == OrderItem.SERVED:
        require_permission(actor, ORDER_ITEM_SERVE)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        item = get_item(order, item_id)
        previous = item.status
        item.status = status
        item.save(update_fields=['status'])

        refresh_derived_state(order)
        audit.emit(actor, 'ORDER_ITEM_STATUS_UPDATED', audit.ENTITY_ORDER_ITEM, item.pk, {
            'order_id': order.pk,
            'from_status': previous,
            'status': status,
        })
    return load_order(actor.tenant_id, order.pk)


def serve_item(actor, order_id, item_id):
    require_permission(actor, ORDER_ITEM_SERVE)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        item = get_item(order, item_id)
        if item.status != OrderItem.READY:
            raise StateConflict('INVALID_ITEM_STATE')
        item.status = OrderItem.SERVED
        item.save(update_fields=['status'])

        refresh_derived_state(order)
        audit.emit(actor, 'ORDER_ITEM_STATUS_UPDATED', audit.ENTITY_ORDER_ITEM, item.pk, {
            'order_id': order.pk,
            'from_status': OrderItem.READY,
            'status': OrderItem.SERVED,
        })
    return load_order(actor.tenant_id, order.pk)


def mark_station_ready(actor, order_id, station=None):
    """Advance every pending item of a station (or of the whole order) to READY"""
    require_permission(actor, KITCHEN_MARK_ALL_READY)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        pending = order.items.filter(status__in=PENDING_STATES)
        if station:
            pending = pending.filter(menu_item__station=station)
        item_ids = list(pending.values_list('id', flat=True))
        OrderItem.objects.filter(pk__in=item_ids).update(status=OrderItem.READY)

        refresh_derived_state(order)
        audit.emit(actor, 'ORDER_MARKED_READY', audit.ENTITY_ORDER, order.pk, {
            'station': station,
            'item_ids': item_ids,
        })
    return load_order(actor.tenant_id, order.pk)


def move_table(actor, order_id, to_table_id):
    require_permission(actor, ORDER_TABLES)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        to_table = topology.lock_table(actor.tenant_id, to_table_id)
        if to_table is None:
            raise NotFound()
        moved = topology.move(order, to_table)
        audit.emit(actor, 'ORDER_MOVED', audit.ENTITY_ORDER, order.pk, moved)
    return load_order(actor.tenant_id, order.pk)


def merge_table(actor, order_id, secondary_table_id):
    require_permission(actor, ORDER_TABLES)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        secondary = topology.lock_table(actor.tenant_id, secondary_table_id)
        if secondary is None:
            raise NotFound()
        topology.merge(order, secondary)
        audit.emit(actor, 'ORDER_TABLE_MERGED', audit.ENTITY_ORDER, order.pk, {
            'secondary_table_id': secondary.pk,
        })
    return load_order(actor.tenant_id, order.pk)


def unmerge_table(actor, order_id, table_id):
    require_permission(actor, ORDER_TABLES)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        detached = topology.unmerge(order, table_id)
        audit.emit(actor, 'ORDER_TABLE_UNMERGED', audit.ENTITY_ORDER, order.pk, {
            'table_id_to_detach': table_id,
            'detached': detached,
        })
    return load_order(actor.tenant_id, order.pk)


def close_order(actor, order_id):
    """
    Close a served, fully paid and confirmed order and free its tables.

    All three conditions are recomputed from the rows under lock; the cached
    status fields are not trusted.
    """
    require_permission(actor, ORDER_CLOSE)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        items = list(order.items.all())

        if derive_order_status((i.status for i in items), order.status) != Order.SERVED:
            raise StateConflict('ORDER_NOT_SERVED')
        if compute_payment_status(order) != rules.PAID:
            raise StateConflict('ORDER_NOT_PAID')
        if order.billing_status != Order.BILLING_PAID:
            raise StateConflict('BILL_NOT_CONFIRMED')

        order.status = Order.CLOSED
        order.payment_status = Order.PAID
        order.order_closed_at = timezone.now()
        order.order_closed_by = actor.user_id
        order.save(update_fields=['status', 'payment_status', 'order_closed_at', 'order_closed_by', 'updated_at'])

        topology.close_all_tables_for(order)
        audit.emit(actor, 'ORDER_CLOSED', audit.ENTITY_ORDER, order.pk)

    logger.info("Order %s closed by %s", order.pk, actor.user_id)
    return load_order(actor.tenant_id, order.pk)
