import logging
from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from pharmacy.core.cache_signals import suspend_cache_signals
from pharmacy.core.cache_utils import invalidate_report_caches
from pharmacy.core.utils import create_audit_log, create_with_generated_code
from pharmacy.inventory.services import receive_stock
from pharmacy.ledger.serializers import TransactionSerializer
from pharmacy.ledger.services import record_transaction
from .models import PurchaseOrder, PurchaseOrderItem
from .utils import generate_purchase_order_code

logger = logging.getLogger('pharmacy.purchasing')


class PurchaseOrderItemSerializer(serializers.ModelSerializer):
    product_code = serializers.CharField(source='product.code', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    unit_name = serializers.CharField(source='product_unit.unit.name', read_only=True)
    conversion_factor = serializers.DecimalField(source='product_unit.conversion_factor', max_digits=12,
                                                 decimal_places=3, read_only=True)
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = PurchaseOrderItem
        fields = ['id', 'product', 'product_code', 'product_name', 'product_unit', 'unit_name',
                  'conversion_factor', 'quantity', 'cost_price', 'batch_number', 'expiry_date', 'line_total']

    def get_line_total(self, obj):
        return str(obj.get_line_total())

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError('Quantity must be greater than 0')
        return value

    def validate_cost_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Cost price cannot be negative')
        return value

    def validate_batch_number(self, value):
        value = (value or '').strip()
        return value or None

    def validate(self, attrs):
        product = attrs.get('product')
        product_unit = attrs.get('product_unit')
        if product and product_unit and product_unit.product_id != product.id:
            raise serializers.ValidationError({'product_unit': 'This unit does not belong to the selected product'})
        return attrs


class PurchaseOrderListSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    user_name = serializers.SerializerMethodField()
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = PurchaseOrder
        fields = ['id', 'code', 'supplier', 'supplier_name', 'user', 'user_name', 'order_date',
                  'total_amount', 'payment_status', 'payment_method', 'item_count', 'created_at']

    def get_user_name(self, obj):
        if obj.user_id is None:
            return None
        return obj.user.full_name or obj.user.username

    def get_item_count(self, obj):
        count = getattr(obj, 'item_count', None)
        return count if count is not None else obj.items.count()


class PurchaseOrderSerializer(serializers.ModelSerializer):
    """
    Purchase order with its items.

    Creating an order receives every item into inventory and, for orders
    created as paid or partially paid, records the matching expense.
    Only the header is writable afterwards; items go through the items
    endpoints.
    """
    code = serializers.CharField(max_length=50, required=False, allow_blank=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    user_name = serializers.SerializerMethodField()
    items = PurchaseOrderItemSerializer(many=True, required=False)
    paid_amount = serializers.SerializerMethodField()
    remaining_amount = serializers.SerializerMethodField()
    payments = serializers.SerializerMethodField()

    class Meta:
        model = PurchaseOrder
        fields = ['id', 'code', 'supplier', 'supplier_name', 'user', 'user_name', 'order_date',
                  'total_amount', 'payment_status', 'payment_method', 'notes', 'items',
                  'paid_amount', 'remaining_amount', 'payments', 'created_at', 'updated_at']
        read_only_fields = ['user', 'total_amount', 'created_at', 'updated_at']
        extra_kwargs = {
            'payment_status': {'required': True},
            'payment_method': {'required': True},
        }

    def get_user_name(self, obj):
        if obj.user_id is None:
            return None
        return obj.user.full_name or obj.user.username

    def get_paid_amount(self, obj):
        return str(obj.get_paid_amount())

    def get_remaining_amount(self, obj):
        return str(obj.get_remaining_amount())

    def get_payments(self, obj):
        return TransactionSerializer(obj.transactions.order_by('date', 'id'), many=True).data

    def validate_code(self, value):
        value = (value or '').strip()
        if not value:
            return value
        queryset = PurchaseOrder.objects.filter(code__iexact=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A purchase order with this code already exists')
        return value

    def validate(self, attrs):
        if self.instance is None and not attrs.get('items'):
            raise serializers.ValidationError({'items': 'A purchase order needs at least one item'})
        return attrs

    def create(self, validated_data):
        items_data = validated_data.pop('items')
        request = self.context.get('request')
        user = request.user if request else None

        with suspend_cache_signals(), transaction.atomic():
            if validated_data.get('code'):
                purchase_order = PurchaseOrder.objects.create(user=user, **validated_data)
            else:
                validated_data.pop('code', None)
                purchase_order = create_with_generated_code(
                    PurchaseOrder, generate_purchase_order_code, user=user, **validated_data
                )

            for item_data in items_data:
                item = PurchaseOrderItem.objects.create(purchase_order=purchase_order, **item_data)
                lot = receive_stock(item.product, item.product_unit, item.quantity,
                                    batch_number=item.batch_number, expiry_date=item.expiry_date)
                create_audit_log(
                    request=request,
                    action='stock_purchase',
                    model_name='Inventory',
                    object_id=lot.id,
                    object_name=item.product.name,
                    object_reference=purchase_order.code,
                    changes={
                        'purchase_order': purchase_order.code,
                        'product_unit': item.product_unit_id,
                        'quantity_added': str(item.quantity),
                        'lot_quantity': str(lot.quantity),
                        'batch_number': item.batch_number,
                        'expiry_date': str(item.expiry_date) if item.expiry_date else None,
                    }
                )

            total = purchase_order.recalculate_total()
            initial_payment = Decimal('0.00')
            if purchase_order.payment_status == 'paid':
                initial_payment = total
            elif purchase_order.payment_status == 'partial':
                initial_payment = (total / 2).quantize(Decimal('0.01'))
            if initial_payment > 0:
                record_transaction(
                    'expense', initial_payment, user=user,
                    description=f"Payment for purchase order {purchase_order.code}",
                    related_type='purchase', purchase_order=purchase_order,
                    payment_method=purchase_order.payment_method,
                )

        create_audit_log(
            request=request, action='create', model_name='PurchaseOrder',
            object_id=purchase_order.id, object_name=f"Purchase order {purchase_order.code}",
            object_reference=purchase_order.code,
            changes={
                'supplier': purchase_order.supplier.name,
                'items_count': len(items_data),
                'total_amount': str(total),
                'payment_status': purchase_order.payment_status,
            }
        )
        logger.info(f"Purchase order {purchase_order.code} created with {len(items_data)} items, total {total}")
        invalidate_report_caches()
        return purchase_order

    def update(self, instance, validated_data):
        validated_data.pop('items', None)
        # status follows the recorded payments once the order exists
        validated_data.pop('payment_status', None)
        return super().update(instance, validated_data)


class PurchaseOrderPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_method = serializers.ChoiceField(choices=PurchaseOrder.PAYMENT_METHOD_CHOICES)
    description = serializers.CharField(required=False, allow_blank=True)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError('Payment amount must be greater than 0')
        purchase_order = self.context['purchase_order']
        remaining = purchase_order.get_remaining_amount()
        if value > remaining:
            raise serializers.ValidationError(f'Payment amount cannot exceed the remaining amount ({remaining})')
        return value
