from django.contrib import admin
from .models import Invoice, InvoiceItem


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    fields = ['product', 'product_unit', 'quantity', 'unit_price', 'amount', 'allocations']
    readonly_fields = ['allocations']
    raw_id_fields = ['product', 'product_unit']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['code', 'invoice_date', 'customer_name', 'final_amount', 'payment_method', 'status', 'user']
    list_filter = ['status', 'payment_method', 'invoice_date']
    search_fields = ['code', 'customer_name', 'customer_phone']
    ordering = ['-invoice_date', '-id']
    inlines = [InvoiceItemInline]
    readonly_fields = ['cancelled_at', 'cancelled_by', 'created_at', 'updated_at']
