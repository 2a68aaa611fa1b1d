from rest_framework import serializers
from .models import Inventory


class InventorySerializer(serializers.ModelSerializer):
    product_code = serializers.CharField(source='product.code', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    unit_name = serializers.CharField(source='product_unit.unit.name', read_only=True)
    conversion_factor = serializers.DecimalField(source='product_unit.conversion_factor', max_digits=12,
                                                 decimal_places=3, read_only=True)
    base_quantity = serializers.DecimalField(max_digits=16, decimal_places=3, read_only=True)
    cost_price = serializers.DecimalField(source='product_unit.cost_price', max_digits=12,
                                          decimal_places=2, read_only=True)

    class Meta:
        model = Inventory
        fields = ['id', 'product', 'product_code', 'product_name', 'product_unit', 'unit_name',
                  'conversion_factor', 'batch_number', 'expiry_date', 'quantity', 'base_quantity',
                  'cost_price', 'created_at', 'updated_at']
        read_only_fields = ['product', 'product_unit', 'batch_number', 'expiry_date', 'quantity', 'created_at', 'updated_at']
