from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from floor.serializers import OrderSerializer
from . import billing
from .serializers import AddPaymentSerializer, ComplimentarySerializer, DiscountUpdateSerializer

ORDER_ID_PARAMETER = OpenApiParameter(
    name='order_id',
    type=OpenApiTypes.INT,
    location=OpenApiParameter.PATH,
    description='Order ID'
)

ERROR_RESPONSES = {
    400: OpenApiTypes.OBJECT,
    403: OpenApiTypes.OBJECT,
    404: OpenApiTypes.OBJECT,
    409: OpenApiTypes.OBJECT,
    422: OpenApiTypes.OBJECT,
}


class AddPaymentView(APIView):
    """Record a payment line against an order"""

    @extend_schema(
        summary="Add payment",
        description=(
            "Append a cash, card or meal card payment. Payment status is recomputed; "
            "overpaying is accepted and leaves the order PAID."
        ),
        request=AddPaymentSerializer,
        parameters=[ORDER_ID_PARAMETER],
        responses={201: OrderSerializer, **ERROR_RESPONSES},
        examples=[
            OpenApiExample(
                'Cash Payment',
                summary='Part payment in cash',
                value={'method': 'CASH', 'amount': '10.00'}
            ),
            OpenApiExample(
                'Payment Failure',
                summary='Order already closed',
                description='Returned when the order has been closed',
                value={'error': 'ORDER_CLOSED'}
            )
        ]
    )
    def post(self, request, order_id):
        serializer = AddPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        order = billing.add_payment(
            request.user,
            order_id,
            serializer.validated_data['method'],
            serializer.validated_data['amount'],
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class RequestBillView(APIView):
    @extend_schema(
        summary="Request the bill",
        description="Move billing to BILL_REQUESTED. May be repeated; the latest requester is kept.",
        request=None,
        parameters=[ORDER_ID_PARAMETER],
        responses={200: OrderSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, order_id):
        order = billing.request_bill(request.user, order_id)
        return Response(OrderSerializer(order).data)


class ConfirmPaymentView(APIView):
    @extend_schema(
        summary="Confirm payment",
        description="Settle the bill. Fails with PAYMENT_NOT_COMPLETE unless payments cover the amount due.",
        request=None,
        parameters=[ORDER_ID_PARAMETER],
        responses={200: OrderSerializer, **ERROR_RESPONSES},
        examples=[
            OpenApiExample(
                'Not Paid',
                summary='Payments do not cover the amount due',
                value={'error': 'PAYMENT_NOT_COMPLETE'}
            )
        ]
    )
    def post(self, request, order_id):
        order = billing.confirm_payment(request.user, order_id)
        return Response(OrderSerializer(order).data)


class DiscountView(APIView):
    @extend_schema(
        summary="Set order discount",
        description="Replace the discount. PERCENT takes 0-100, AMOUNT a money value; both are capped at the subtotal.",
        request=DiscountUpdateSerializer,
        parameters=[ORDER_ID_PARAMETER],
        responses={200: OrderSerializer, **ERROR_RESPONSES},
        examples=[
            OpenApiExample('Ten percent off', value={'type': 'PERCENT', 'value': '10'}),
        ]
    )
    def post(self, request, order_id):
        serializer = DiscountUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        order = billing.set_discount(
            request.user,
            order_id,
            serializer.validated_data['type'],
            serializer.validated_data['value'],
        )
        return Response(OrderSerializer(order).data)


class ComplimentaryView(APIView):
    @extend_schema(
        summary="Mark an item complimentary",
        description="Complimentary items stay on the order but are left out of the subtotal.",
        request=ComplimentarySerializer,
        responses={200: OrderSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, order_id, item_id):
        serializer = ComplimentarySerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        order = billing.set_complimentary(
            request.user, order_id, item_id, serializer.validated_data['is_complimentary']
        )
        return Response(OrderSerializer(order).data)
