from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from . import lifecycle, topology
from .serializers import (
    CreateOrderSerializer, CreateTableSerializer, ItemStatusSerializer, MarkReadySerializer,
    MergeTableSerializer, MoveTableSerializer, OrderNoteSerializer, OrderSerializer,
    TableSerializer, TableStatusSerializer, UnmergeTableSerializer, UpdateTableSerializer,
)

ERROR_RESPONSES = {
    400: OpenApiTypes.OBJECT,
    403: OpenApiTypes.OBJECT,
    404: OpenApiTypes.OBJECT,
    409: OpenApiTypes.OBJECT,
    422: OpenApiTypes.OBJECT,
}


def _order_response(order, status_code=status.HTTP_200_OK):
    return Response(OrderSerializer(order).data, status=status_code)


class TableListView(APIView):
    @extend_schema(
        summary="List tables",
        description="All tables of the caller's tenant with their occupancy status",
        responses={200: TableSerializer(many=True)},
    )
    def get(self, request):
        tables = topology.list_tables(request.user)
        return Response(TableSerializer(tables, many=True).data)

    @extend_schema(
        summary="Create a table",
        description="Admins only. New tables start FREE.",
        request=CreateTableSerializer,
        responses={201: TableSerializer, **ERROR_RESPONSES},
        examples=[
            OpenApiExample(
                'Create Table Example',
                summary='Create table T5',
                value={'name': 'T5'}
            )
        ]
    )
    def post(self, request):
        serializer = CreateTableSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        table = topology.create_table(request.user, serializer.validated_data['name'])
        return Response(TableSerializer(table).data, status=status.HTTP_201_CREATED)


class TableDetailView(APIView):
    @extend_schema(
        summary="Rename a table or edit its note",
        description="Admins only. Occupancy status is not touched.",
        request=UpdateTableSerializer,
        responses={200: TableSerializer, **ERROR_RESPONSES},
    )
    def put(self, request, table_id):
        serializer = UpdateTableSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        table = topology.update_table(
            request.user,
            table_id,
            serializer.validated_data['name'],
            serializer.validated_data.get('note'),
        )
        return Response(TableSerializer(table).data)


class TableStatusView(APIView):
    @extend_schema(
        summary="Reopen or retire a table",
        description="Set a table FREE or CLOSED by hand. Refused while an active order references the table.",
        request=TableStatusSerializer,
        responses={200: TableSerializer, **ERROR_RESPONSES},
    )
    def patch(self, request, table_id):
        serializer = TableStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        table = topology.set_table_status(request.user, table_id, serializer.validated_data['status'])
        return Response(TableSerializer(table).data)


class OrderListView(APIView):
    @extend_schema(
        summary="List orders",
        description="Orders of the caller's tenant, newest first",
        parameters=[
            OpenApiParameter(
                name='active',
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                description='Only orders that are not CLOSED'
            )
        ],
        responses={200: OrderSerializer(many=True)},
    )
    def get(self, request):
        active_only = request.query_params.get('active', '').lower() in ('1', 'true', 'yes')
        orders = lifecycle.list_orders(request.user, active_only=active_only)
        return Response(OrderSerializer(orders, many=True).data)

    @extend_schema(
        summary="Create an order or add items to the table's open order",
        description=(
            "Opens a new order on a free table, or appends the items to the order already "
            "running on that table (as primary or merged table). Fails as a whole if any "
            "menu item is unknown or unavailable."
        ),
        request=CreateOrderSerializer,
        responses={201: OrderSerializer, **ERROR_RESPONSES},
        examples=[
            OpenApiExample(
                'Create Order Example',
                summary='Two coffees for table 3',
                value={'table_id': 3, 'items': [{'menu_item_id': 1, 'quantity': 2}], 'note': 'window seat'}
            )
        ]
    )
    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        order = lifecycle.create_or_get_order(request.user, data['table_id'], data['items'], data.get('note'))
        return _order_response(order, status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    @extend_schema(
        summary="Get order snapshot",
        responses={200: OrderSerializer, 404: OpenApiTypes.OBJECT},
    )
    def get(self, request, order_id):
        return _order_response(lifecycle.load_order(request.user.tenant_id, order_id))


class OrderNoteView(APIView):
    @extend_schema(summary="Replace the order note", request=OrderNoteSerializer,
                   responses={200: OrderSerializer, **ERROR_RESPONSES})
    def patch(self, request, order_id):
        serializer = OrderNoteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        return _order_response(lifecycle.update_note(request.user, order_id, serializer.validated_data['note']))


class ItemStatusView(APIView):
    @extend_schema(
        summary="Set an item's status",
        description=(
            "Any status may be set directly. CANCELED needs ORDER_ITEM_CANCEL, SERVED needs "
            "ORDER_ITEM_SERVE, and kitchen staff also need KITCHEN_ITEM_STATUS."
        ),
        request=ItemStatusSerializer,
        responses={200: OrderSerializer, **ERROR_RESPONSES},
    )
    def patch(self, request, order_id, item_id):
        serializer = ItemStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        order = lifecycle.set_item_status(request.user, order_id, item_id, serializer.validated_data['status'])
        return _order_response(order)


class ServeItemView(APIView):
    @extend_schema(
        summary="Serve a ready item",
        description="Only items that are READY can be served; anything else is INVALID_ITEM_STATE.",
        request=None,
        responses={200: OrderSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, order_id, item_id):
        return _order_response(lifecycle.serve_item(request.user, order_id, item_id))


class MarkReadyView(APIView):
    @extend_schema(
        summary="Mark a station's pending items ready",
        request=MarkReadySerializer,
        responses={200: OrderSerializer, **ERROR_RESPONSES},
        examples=[
            OpenApiExample('Bar only', value={'station': 'BAR'}),
        ]
    )
    def post(self, request, order_id):
        serializer = MarkReadySerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        order = lifecycle.mark_station_ready(request.user, order_id, serializer.validated_data.get('station'))
        return _order_response(order)


class MoveTableView(APIView):
    @extend_schema(
        summary="Move an order to another table",
        description="The target must be FREE with no active order; merged orders cannot move.",
        request=MoveTableSerializer,
        responses={200: OrderSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, order_id):
        serializer = MoveTableSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        order = lifecycle.move_table(request.user, order_id, serializer.validated_data['to_table_id'])
        return _order_response(order)


class MergeTableView(APIView):
    @extend_schema(
        summary="Merge another table into the order",
        request=MergeTableSerializer,
        responses={200: OrderSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, order_id):
        serializer = MergeTableSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        order = lifecycle.merge_table(request.user, order_id, serializer.validated_data['secondary_table_id'])
        return _order_response(order)


class UnmergeTableView(APIView):
    @extend_schema(
        summary="Detach a merged table from the order",
        request=UnmergeTableSerializer,
        responses={200: OrderSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, order_id):
        serializer = UnmergeTableSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        order = lifecycle.unmerge_table(request.user, order_id, serializer.validated_data['table_id'])
        return _order_response(order)


class CloseOrderView(APIView):
    @extend_schema(
        summary="Close an order",
        description=(
            "Requires every item served or canceled, payments covering the amount due and a "
            "confirmed bill. Frees the order's tables."
        ),
        request=None,
        responses={200: OrderSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, order_id):
        return _order_response(lifecycle.close_order(request.user, order_id))
