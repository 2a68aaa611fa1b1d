from django.contrib import admin
from .models import Inventory


@admin.register(Inventory)
class InventoryAdmin(admin.ModelAdmin):
    list_display = ['product', 'product_unit', 'batch_number', 'expiry_date', 'quantity', 'updated_at']
    list_filter = ['expiry_date', 'product__category']
    search_fields = ['product__code', 'product__name', 'batch_number']
    ordering = ['expiry_date']
    raw_id_fields = ['product', 'product_unit']
