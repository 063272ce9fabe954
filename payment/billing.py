"""
Billing operations on an order: discount, complimentary items, payments,
and the bill request / payment confirmation workflow.
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from epos import audit
from epos.permissions import ORDER_COMPLIMENTARY, ORDER_DISCOUNT, ORDER_PAYMENTS, require_permission
from floor.exceptions import InvalidRequest, StateConflict
from floor.lifecycle import compute_payment_status, get_item, load_order, lock_order, refresh_derived_state
from floor.models import Order
from . import rules
from .models import PaymentLine

logger = logging.getLogger(__name__)


def set_discount(actor, order_id, discount_type, value):
    """Replace the order's discount wholesale; the previous one is dropped."""
    require_permission(actor, ORDER_DISCOUNT)
    if discount_type not in (rules.PERCENT, rules.AMOUNT):
        raise InvalidRequest('INVALID_DISCOUNT')
    value = Decimal(str(value))
    if value < 0:
        raise InvalidRequest('INVALID_DISCOUNT')

    with transaction.atomic():
        order = lock_order(actor, order_id)
        order.discount_type = discount_type
        order.discount_value = value
        order.discount_updated_at = timezone.now()
        order.discount_updated_by = actor.user_id
        order.save(update_fields=[
            'discount_type', 'discount_value', 'discount_updated_at', 'discount_updated_by', 'updated_at',
        ])

        refresh_derived_state(order)
        audit.emit(actor, 'ORDER_DISCOUNT_UPDATED', audit.ENTITY_ORDER, order.pk, order.discount)
    return load_order(actor.tenant_id, order.pk)


def set_complimentary(actor, order_id, item_id, is_complimentary):
    require_permission(actor, ORDER_COMPLIMENTARY)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        item = get_item(order, item_id)
        item.is_complimentary = bool(is_complimentary)
        item.save(update_fields=['is_complimentary'])

        refresh_derived_state(order)
        audit.emit(actor, 'ORDER_ITEM_COMPLIMENTARY_UPDATED', audit.ENTITY_ORDER_ITEM, item.pk, {
            'order_id': order.pk,
            'is_complimentary': item.is_complimentary,
        })
    return load_order(actor.tenant_id, order.pk)


def add_payment(actor, order_id, method, amount):
    """
    Append a payment line.

    Amounts are not checked against what is still due; paying more than the
    bill simply leaves the order PAID.
    """
    require_permission(actor, ORDER_PAYMENTS)
    if method not in dict(PaymentLine.METHOD_CHOICES):
        raise InvalidRequest('INVALID_PAYMENT_METHOD')
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidRequest('INVALID_AMOUNT')

    with transaction.atomic():
        order = lock_order(actor, order_id)
        payment = PaymentLine.objects.create(
            order=order,
            method=method,
            amount=amount,
            created_by_user_id=actor.user_id,
        )

        refresh_derived_state(order)
        audit.emit(actor, 'PAYMENT_ADDED', audit.ENTITY_PAYMENT, payment.pk, {
            'order_id': order.pk,
            'amount': payment.amount,
            'method': payment.method,
        })

    logger.info("Payment %s of %s (%s) on order %s", payment.pk, amount, method, order.pk)
    return load_order(actor.tenant_id, order.pk)


def request_bill(actor, order_id):
    require_permission(actor, ORDER_PAYMENTS)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        order.billing_status = Order.BILL_REQUESTED
        order.bill_requested_at = timezone.now()
        order.bill_requested_by = actor.user_id
        order.save(update_fields=['billing_status', 'bill_requested_at', 'bill_requested_by', 'updated_at'])
        audit.emit(actor, 'ORDER_BILL_REQUESTED', audit.ENTITY_ORDER, order.pk)
    return load_order(actor.tenant_id, order.pk)


def confirm_payment(actor, order_id):
    """Mark the bill as settled. The payments on file must cover what is due right now."""
    require_permission(actor, ORDER_PAYMENTS)

    with transaction.atomic():
        order = lock_order(actor, order_id)
        if compute_payment_status(order) != rules.PAID:
            raise StateConflict('PAYMENT_NOT_COMPLETE')

        order.billing_status = Order.BILLING_PAID
        order.payment_status = Order.PAID
        order.payment_confirmed_at = timezone.now()
        order.payment_confirmed_by = actor.user_id
        order.save(update_fields=[
            'billing_status', 'payment_status', 'payment_confirmed_at', 'payment_confirmed_by', 'updated_at',
        ])
        audit.emit(actor, 'ORDER_PAYMENT_CONFIRMED', audit.ENTITY_ORDER, order.pk)
    return load_order(actor.tenant_id, order.pk)
