from decimal import Decimal

from rest_framework import serializers
from payment import rules
from payment.serializers import PaymentLineSerializer
from .lifecycle import SETTABLE_ITEM_STATUSES
from .models import MenuItem, Order, OrderItem, Table
from .topology import MANUAL_TABLE_STATUSES

CENTS = Decimal('0.01')


class TableSerializer(serializers.ModelSerializer):
    class Meta:
        model = Table
        fields = ['id', 'name', 'status', 'customer_id', 'note']
        read_only_fields = fields


class CreateTableSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=50, help_text="Table name shown on the floor plan")

    def validate_name(self, value):
        if not value.strip():
            raise serializers.ValidationError("name must not be blank")
        return value


class UpdateTableSerializer(CreateTableSerializer):
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class TableStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=MANUAL_TABLE_STATUSES,
        help_text="FREE to reopen a table, CLOSED to retire it"
    )


class OrderItemSerializer(serializers.ModelSerializer):
    menu_item_name = serializers.CharField(source='menu_item.name', read_only=True)
    station = serializers.CharField(source='menu_item.station', read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'order_id', 'menu_item_id', 'menu_item_name', 'station', 'variant_id',
                 'modifier_option_ids', 'unit_price', 'quantity', 'note', 'status', 'is_complimentary']
        read_only_fields = fields
        extra_kwargs = {
            'unit_price': {'help_text': 'Menu price captured when the item was ordered'},
        }


class DiscountSerializer(serializers.Serializer):
    type = serializers.CharField()
    value = serializers.DecimalField(max_digits=10, decimal_places=2)
    updated_at = serializers.DateTimeField()
    updated_by_user_id = serializers.CharField()


class OrderSerializer(serializers.ModelSerializer):
    """Full order snapshot: order, items, payments and money totals"""
    linked_table_ids = serializers.PrimaryKeyRelatedField(source='linked_tables', many=True, read_only=True)
    table_name = serializers.CharField(source='table.name', read_only=True)
    discount = DiscountSerializer(read_only=True, allow_null=True)
    items = OrderItemSerializer(many=True, read_only=True)
    payments = PaymentLineSerializer(many=True, read_only=True)
    totals = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = ['id', 'tenant_id', 'table_id', 'table_name', 'linked_table_ids', 'waiter_id', 'customer_id',
                 'status', 'note', 'discount', 'payment_status', 'billing_status',
                 'bill_requested_at', 'bill_requested_by', 'payment_confirmed_at', 'payment_confirmed_by',
                 'order_closed_at', 'order_closed_by', 'created_at', 'updated_at',
                 'totals', 'items', 'payments']
        read_only_fields = fields

    def get_totals(self, order):
        subtotal = rules.subtotal(order.items.all())
        discount = order.discount
        totals = {
            'subtotal': subtotal,
            'discount_amount': rules.discount_amount(subtotal, discount),
            'due': rules.amount_due(subtotal, discount),
            'paid': rules.payments_total(order.payments.all()),
        }
        return {key: str(value.quantize(CENTS)) for key, value in totals.items()}


class CreateOrderItemSerializer(serializers.Serializer):
    menu_item_id = serializers.IntegerField(help_text="ID of the menu item to add")
    quantity = serializers.IntegerField(min_value=1, help_text="Quantity to add (minimum 1)")
    note = serializers.CharField(required=False, allow_blank=True, default='')
    variant_id = serializers.CharField(required=False, allow_null=True, default=None)
    modifier_option_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class CreateOrderSerializer(serializers.Serializer):
    table_id = serializers.IntegerField(help_text="Table the order is for")
    items = CreateOrderItemSerializer(many=True, allow_empty=False)
    note = serializers.CharField(required=False, allow_blank=True, default='')


class OrderNoteSerializer(serializers.Serializer):
    note = serializers.CharField(allow_blank=True)


class ItemStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SETTABLE_ITEM_STATUSES)


class MarkReadySerializer(serializers.Serializer):
    station = serializers.ChoiceField(
        choices=[choice for choice, _ in MenuItem.STATION_CHOICES],
        required=False,
        allow_null=True,
        help_text="Only advance items prepared at this station; all stations when omitted"
    )


class MoveTableSerializer(serializers.Serializer):
    to_table_id = serializers.IntegerField()


class MergeTableSerializer(serializers.Serializer):
    secondary_table_id = serializers.IntegerField()


class UnmergeTableSerializer(serializers.Serializer):
    table_id = serializers.IntegerField()
