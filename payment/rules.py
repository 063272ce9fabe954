"""
Money rules for an order: subtotal, discount and payment sufficiency.

Everything here is pure. Callers pass plain values (items, payments and the
discount mapping) and store the result; nothing is cached between calls.
"""
from decimal import Decimal
from typing import Iterable, Mapping, Optional

PERCENT = 'PERCENT'
AMOUNT = 'AMOUNT'

UNPAID = 'UNPAID'
PARTIALLY_PAID = 'PARTIALLY_PAID'
PAID = 'PAID'

# Absorbs rounding noise when comparing what was paid against what is due
EPSILON = Decimal('1e-9')

ZERO = Decimal('0')

EXCLUDED_ITEM_STATUSES = frozenset({'CANCELED'})


def _to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def line_total(unit_price, quantity) -> Decimal:
    return _to_decimal(unit_price) * int(quantity)


def subtotal(items: Iterable) -> Decimal:
    """Sum of unit_price * quantity over items that are neither canceled nor complimentary"""
    total = ZERO
    for item in items:
        if item.status in EXCLUDED_ITEM_STATUSES or item.is_complimentary:
            continue
        total += line_total(item.unit_price, item.quantity)
    return total


def payments_total(payments: Iterable) -> Decimal:
    return sum((_to_decimal(p.amount) for p in payments), ZERO)


def discount_amount(subtotal_amount, discount: Optional[Mapping]) -> Decimal:
    """
    Amount taken off the subtotal by a discount.

    AMOUNT discounts are clamped to [0, subtotal]; PERCENT discounts take
    subtotal * value / 100, clamped to the same range. Unknown types and a
    missing discount give zero.
    """
    if not discount:
        return ZERO

    base = _to_decimal(subtotal_amount)
    value = _to_decimal(discount.get('value'))
    kind = discount.get('type')

    if kind == AMOUNT:
        raw = value
    elif kind == PERCENT:
        raw = base * value / 100
    else:
        return ZERO

    return max(ZERO, min(base, raw))


def amount_due(subtotal_amount, discount: Optional[Mapping]) -> Decimal:
    base = _to_decimal(subtotal_amount)
    return max(ZERO, base - discount_amount(base, discount))


def payment_status(subtotal_amount, discount: Optional[Mapping], paid_amount) -> str:
    """
    Classify how far the payments cover the amount due.

    Nothing due counts as PAID. Overpayment is allowed and is also PAID.
    """
    due = amount_due(subtotal_amount, discount)
    paid = _to_decimal(paid_amount)

    if due <= 0:
        return PAID
    if paid <= 0:
        return UNPAID
    if paid + EPSILON < due:
        return PARTIALLY_PAID
    return PAID
