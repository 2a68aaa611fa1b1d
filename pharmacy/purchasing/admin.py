from django.contrib import admin
from .models import PurchaseOrder, PurchaseOrderItem


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0
    fields = ['product', 'product_unit', 'quantity', 'cost_price', 'batch_number', 'expiry_date']
    raw_id_fields = ['product', 'product_unit']


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = ['code', 'supplier', 'order_date', 'total_amount', 'payment_status', 'payment_method', 'user', 'created_at']
    list_filter = ['payment_status', 'payment_method', 'order_date']
    search_fields = ['code', 'supplier__name', 'notes']
    ordering = ['-order_date', '-id']
    inlines = [PurchaseOrderItemInline]
    readonly_fields = ['created_at', 'updated_at']
