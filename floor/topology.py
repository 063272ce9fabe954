"""
Table topology: which tables an order occupies, and table status upkeep.

A table is OCCUPIED exactly while some order that is not CLOSED references
it, either as its primary table or as a linked (merged) table. Callers run
these helpers inside the transaction that holds the order row lock, and pass
tables they have already locked with select_for_update().
"""
import logging

from django.db import DatabaseError, transaction
from django.db.models import Q

from epos import audit
from epos.permissions import ORDER_TABLES, require_admin, require_permission
from .exceptions import DomainRuleViolation, InvalidRequest, NotFound, StateConflict
from .models import Order, Table

logger = logging.getLogger(__name__)

MANUAL_TABLE_STATUSES = (Table.FREE, Table.CLOSED)


def active_order_for(table_id, tenant_id, exclude_order_id=None):
    """Return the order that is not CLOSED and references the table, if any"""
    orders = (
        Order.objects
        .filter(tenant_id=tenant_id)
        .exclude(status=Order.CLOSED)
        .filter(Q(table_id=table_id) | Q(linked_tables__id=table_id))
    )
    if exclude_order_id is not None:
        orders = orders.exclude(pk=exclude_order_id)
    return orders.first()


def lock_table(tenant_id, table_id):
    return Table.objects.select_for_update().filter(pk=table_id, tenant_id=tenant_id).first()


def occupy(table):
    if table.status != Table.FREE:
        return
    Table.objects.filter(pk=table.pk, status=Table.FREE).update(status=Table.OCCUPIED)
    table.status = Table.OCCUPIED


def free(table_id):
    """
    Mark a table FREE.

    Runs in its own savepoint and only logs on failure: the order write that
    triggered it has already happened and must not be undone by cleanup.
    """
    try:
        with transaction.atomic():
            Table.objects.filter(pk=table_id).update(status=Table.FREE)
    except DatabaseError:
        logger.warning("Could not free table %s", table_id, exc_info=True)


def move(order, to_table):
    if order.linked_tables.exists():
        raise DomainRuleViolation('CANNOT_MOVE_MERGED_ORDER')
    if to_table.status != Table.FREE:
        raise StateConflict('TARGET_TABLE_NOT_FREE')
    if active_order_for(to_table.pk, order.tenant_id, exclude_order_id=order.pk) is not None:
        raise StateConflict('TARGET_TABLE_HAS_ACTIVE_ORDER')

    from_table_id = order.table_id
    order.table = to_table
    order.save(update_fields=['table', 'updated_at'])

    free(from_table_id)
    occupy(to_table)
    return {'from_table_id': from_table_id, 'to_table_id': to_table.pk}


def merge(order, secondary_table):
    if secondary_table.pk == order.table_id:
        raise InvalidRequest('INVALID_SECONDARY_TABLE')
    if active_order_for(secondary_table.pk, order.tenant_id, exclude_order_id=order.pk) is not None:
        raise StateConflict('SECONDARY_HAS_ACTIVE_ORDER')
    if secondary_table.status == Table.CLOSED:
        raise DomainRuleViolation('TABLE_CLOSED')

    # add() skips tables that are already linked
    order.linked_tables.add(secondary_table)
    occupy(secondary_table)


def unmerge(order, table_id):
    """Detach a linked table. Returns False when it was not linked to begin with."""
    if not order.linked_tables.filter(pk=table_id).exists():
        return False
    order.linked_tables.remove(table_id)
    free(table_id)
    return True


def close_all_tables_for(order):
    free(order.table_id)
    for table_id in order.linked_tables.values_list('id', flat=True):
        free(table_id)


# Table administration


def list_tables(actor):
    return Table.objects.filter(tenant_id=actor.tenant_id)


def create_table(actor, name):
    require_admin(actor)
    with transaction.atomic():
        table = Table.objects.create(tenant_id=actor.tenant_id, name=name.strip(), status=Table.FREE)
        audit.emit(actor, 'TABLE_CREATED', audit.ENTITY_TABLE, table.pk, {'name': table.name})
    return table


def update_table(actor, table_id, name, note=None):
    require_admin(actor)
    with transaction.atomic():
        table = lock_table(actor.tenant_id, table_id)
        if table is None:
            raise NotFound()
        table.name = name.strip()
        table.note = note
        table.save(update_fields=['name', 'note'])
        audit.emit(actor, 'TABLE_UPDATED', audit.ENTITY_TABLE, table.pk, {'name': table.name})
    return table


def set_table_status(actor, table_id, status):
    """
    Manually reopen (FREE) or retire (CLOSED) a table.

    OCCUPIED is only ever set by orders claiming the table, and a table an
    active order still references cannot be changed by hand.
    """
    require_permission(actor, ORDER_TABLES)
    if status not in MANUAL_TABLE_STATUSES:
        raise InvalidRequest('INVALID_TABLE_STATUS')

    with transaction.atomic():
        table = lock_table(actor.tenant_id, table_id)
        if table is None:
            raise NotFound()
        if active_order_for(table.pk, actor.tenant_id) is not None:
            raise StateConflict('TABLE_HAS_ACTIVE_ORDER')

        previous = table.status
        table.status = status
        table.save(update_fields=['status'])
        audit.emit(actor, 'TABLE_STATUS_UPDATED', audit.ENTITY_TABLE, table.pk, {
            'from_status': previous,
            'to_status': status,
        })
    return table
