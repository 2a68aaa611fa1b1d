from decimal import Decimal
from rest_framework import serializers
from .models import Transaction


class TransactionSerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()
    invoice_code = serializers.CharField(source='invoice.code', read_only=True, allow_null=True)
    purchase_order_code = serializers.CharField(source='purchase_order.code', read_only=True, allow_null=True)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))

    class Meta:
        model = Transaction
        fields = ['id', 'date', 'type', 'amount', 'payment_method', 'description', 'user', 'user_name',
                  'related_type', 'invoice', 'invoice_code', 'purchase_order', 'purchase_order_code',
                  'created_at']
        read_only_fields = ['user', 'related_type', 'invoice', 'purchase_order', 'created_at']
        extra_kwargs = {'description': {'required': True}}

    def get_user_name(self, obj):
        if obj.user_id is None:
            return None
        return obj.user.full_name or obj.user.username

    def validate_description(self, value):
        value = (value or '').strip()
        if not value:
            raise serializers.ValidationError('Description is required')
        return value
