from decimal import Decimal

from rest_framework import serializers
from .models import PaymentLine
from . import rules


class PaymentLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentLine
        fields = ['id', 'order_id', 'method', 'amount', 'created_at', 'created_by_user_id']
        read_only_fields = fields


class AddPaymentSerializer(serializers.Serializer):
    """Serializer for adding a payment line"""
    method = serializers.ChoiceField(choices=PaymentLine.METHOD_CHOICES)
    amount = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal('0.01'),
        help_text="Amount paid, must be positive"
    )


class DiscountUpdateSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=[rules.PERCENT, rules.AMOUNT])
    value = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal('0'),
        help_text="Percentage (0-100) for PERCENT, money amount for AMOUNT"
    )


class ComplimentarySerializer(serializers.Serializer):
    is_complimentary = serializers.BooleanField()
