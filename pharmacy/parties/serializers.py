from rest_framework import serializers
from pharmacy.core.serializers import validate_phone_number
from .models import Supplier


class SupplierSerializer(serializers.ModelSerializer):
    purchase_order_count = serializers.SerializerMethodField()

    class Meta:
        model = Supplier
        fields = ['id', 'name', 'contact_person', 'phone', 'email', 'address', 'notes',
                  'purchase_order_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_purchase_order_count(self, obj):
        count = getattr(obj, 'purchase_order_count', None)
        return count if count is not None else obj.purchase_orders.count()

    def validate_name(self, value):
        value = (value or '').strip()
        if len(value) < 2:
            raise serializers.ValidationError('Supplier name must be at least 2 characters')
        return value

    def validate_phone(self, value):
        return validate_phone_number((value or '').strip())
