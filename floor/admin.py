from django.contrib import admin
from .models import MenuItem, Order, OrderItem, Table, Tenant


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ['id', 'name']
    search_fields = ['name']


@admin.register(Table)
class TableAdmin(admin.ModelAdmin):
    list_display = ['id', 'tenant', 'name', 'status', 'customer_id']
    list_filter = ['tenant', 'status']
    search_fields = ['name']
    # Occupancy follows the orders on the table
    readonly_fields = ['status']


@admin.register(MenuItem)
class MenuItemAdmin(admin.ModelAdmin):
    list_display = ['id', 'tenant', 'name', 'price', 'station', 'is_available']
    list_filter = ['tenant', 'station', 'is_available']
    search_fields = ['name']


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    fields = ['menu_item', 'quantity', 'unit_price', 'status', 'is_complimentary', 'note']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Orders are read-only here. Items, payments, discounts and table moves go
    through the API so that the cached statuses and audit trail stay in step.
    """
    list_display = ['id', 'tenant', 'table', 'status', 'payment_status', 'billing_status', 'created_at']
    list_filter = ['status', 'payment_status', 'billing_status', 'created_at']
    search_fields = ['table__name', 'waiter_id', 'customer_id']
    readonly_fields = [
        'tenant', 'table', 'linked_tables', 'waiter_id', 'status',
        'payment_status', 'billing_status',
        'discount_type', 'discount_value', 'discount_updated_at', 'discount_updated_by',
        'bill_requested_at', 'bill_requested_by',
        'payment_confirmed_at', 'payment_confirmed_by',
        'order_closed_at', 'order_closed_by',
        'created_at', 'updated_at',
    ]
    inlines = [OrderItemInline]

    def has_add_permission(self, request):
        return False
