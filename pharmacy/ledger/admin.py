from django.contrib import admin
from .models import Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ['date', 'type', 'amount', 'payment_method', 'related_type', 'invoice', 'purchase_order', 'user']
    list_filter = ['type', 'related_type', 'payment_method', 'date']
    search_fields = ['description', 'invoice__code', 'purchase_order__code']
    ordering = ['-date']
    raw_id_fields = ['invoice', 'purchase_order']
