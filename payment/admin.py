from django.contrib import admin
from .models import PaymentLine


@admin.register(PaymentLine)
class PaymentLineAdmin(admin.ModelAdmin):
    """Payment lines are recorded through the API and never edited afterwards"""
    list_display = ['id', 'order', 'method', 'amount', 'created_by_user_id', 'created_at']
    list_filter = ['method', 'created_at']
    search_fields = ['order__table__name', 'created_by_user_id']
    readonly_fields = ['created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
