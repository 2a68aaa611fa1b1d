import logging
from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from pharmacy.catalog.models import Product
from pharmacy.core.cache_signals import suspend_cache_signals
from pharmacy.core.cache_utils import invalidate_report_caches
from pharmacy.core.serializers import validate_phone_number
from pharmacy.core.utils import create_with_generated_code
from pharmacy.inventory.services import deduct_stock_fefo
from pharmacy.ledger.serializers import TransactionSerializer
from pharmacy.ledger.services import record_transaction
from .models import Invoice, InvoiceItem
from .utils import generate_invoice_code

logger = logging.getLogger('pharmacy.pos')

CENT = Decimal('0.01')


class InvoiceItemSerializer(serializers.ModelSerializer):
    product_code = serializers.CharField(source='product.code', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    unit_name = serializers.CharField(source='product_unit.unit.name', read_only=True)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)

    class Meta:
        model = InvoiceItem
        fields = ['id', 'product', 'product_code', 'product_name', 'product_unit', 'unit_name',
                  'quantity', 'unit_price', 'amount', 'allocations']
        read_only_fields = ['amount', 'allocations']

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError('Quantity must be greater than 0')
        return value

    def validate_unit_price(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError('Unit price cannot be negative')
        return value

    def validate(self, attrs):
        product = attrs['product']
        product_unit = attrs['product_unit']
        if product_unit.product_id != product.id:
            raise serializers.ValidationError({'product_unit': 'This unit does not belong to the selected product'})
        if attrs.get('unit_price') is None:
            attrs['unit_price'] = product_unit.selling_price
        attrs['amount'] = (attrs['quantity'] * attrs['unit_price']).quantize(CENT)
        return attrs


class InvoiceListSerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = ['id', 'code', 'customer_name', 'customer_phone', 'user', 'user_name', 'invoice_date',
                  'total_amount', 'discount', 'final_amount', 'payment_method', 'status', 'item_count']

    def get_user_name(self, obj):
        if obj.user_id is None:
            return None
        return obj.user.full_name or obj.user.username

    def get_item_count(self, obj):
        count = getattr(obj, 'item_count', None)
        return count if count is not None else obj.items.count()


class InvoiceSerializer(serializers.ModelSerializer):
    """
    Invoice with its lines.

    Creating an invoice prices each line (the unit's selling price unless a
    price is given), deducts stock first-expired-first-out and records the
    sale's income, all in one database transaction.
    """
    user_name = serializers.SerializerMethodField()
    cancelled_by_name = serializers.SerializerMethodField()
    items = InvoiceItemSerializer(many=True)
    transactions = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = ['id', 'code', 'customer_name', 'customer_phone', 'user', 'user_name', 'invoice_date',
                  'total_amount', 'discount', 'final_amount', 'payment_method', 'status', 'notes',
                  'cancelled_at', 'cancelled_by', 'cancelled_by_name', 'cancel_reason', 'items',
                  'transactions', 'created_at', 'updated_at']
        read_only_fields = ['code', 'user', 'invoice_date', 'total_amount', 'final_amount', 'status',
                            'cancelled_at', 'cancelled_by', 'cancel_reason', 'created_at', 'updated_at']

    def get_user_name(self, obj):
        if obj.user_id is None:
            return None
        return obj.user.full_name or obj.user.username

    def get_cancelled_by_name(self, obj):
        if obj.cancelled_by_id is None:
            return None
        return obj.cancelled_by.full_name or obj.cancelled_by.username

    def get_transactions(self, obj):
        return TransactionSerializer(obj.transactions.order_by('date', 'id'), many=True).data

    def validate_customer_phone(self, value):
        value = (value or '').strip()
        if value:
            validate_phone_number(value)
        return value

    def validate_discount(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError('Discount cannot be negative')
        return value

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError('An invoice needs at least one item')
        return value

    def validate(self, attrs):
        total = sum((item['amount'] for item in attrs.get('items', [])), Decimal('0.00'))
        discount = attrs.get('discount') or Decimal('0.00')
        if discount > total:
            raise serializers.ValidationError({'discount': 'Discount cannot exceed the invoice total'})
        attrs['total_amount'] = total
        attrs['discount'] = discount
        attrs['final_amount'] = total - discount
        return attrs

    def create(self, validated_data):
        """Raises InsufficientStockError when a line cannot be covered; nothing is saved then"""
        items_data = validated_data.pop('items')
        request = self.context.get('request')
        user = request.user if request else None

        with suspend_cache_signals(), transaction.atomic():
            invoice = create_with_generated_code(
                Invoice, generate_invoice_code,
                user=user,
                status='completed',
                **validated_data
            )
            for item_data in items_data:
                deductions = deduct_stock_fefo(item_data['product'], item_data['product_unit'],
                                               item_data['quantity'])
                InvoiceItem.objects.create(
                    invoice=invoice,
                    allocations=[[lot.id, str(taken)] for lot, taken in deductions],
                    **item_data
                )
            if invoice.final_amount > 0:
                record_transaction(
                    'income', invoice.final_amount, user=user,
                    description=f"Sale {invoice.code}",
                    related_type='invoice', invoice=invoice,
                    payment_method=invoice.payment_method,
                )

        logger.info(f"Invoice {invoice.code} created with {len(items_data)} items, final amount {invoice.final_amount}")
        invalidate_report_caches()
        return invoice


class InvoiceCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True)


class PosProductSerializer(serializers.ModelSerializer):
    """Sellable product with the stock on hand for each of its units"""
    category_name = serializers.CharField(source='category.name', read_only=True)
    compartment_location = serializers.SerializerMethodField()
    units = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'code', 'name', 'category', 'category_name', 'compartment_location', 'units']

    def get_compartment_location(self, obj):
        if obj.compartment_id is None:
            return None
        return obj.compartment.location_label

    def get_units(self, obj):
        quantities = self.context.get('available_quantities', {})
        return [
            {
                'product_unit_id': product_unit.id,
                'unit_id': product_unit.unit_id,
                'unit_name': product_unit.unit.name,
                'conversion_factor': str(product_unit.conversion_factor),
                'selling_price': str(product_unit.selling_price),
                'is_base_unit': product_unit.is_base_unit,
                'available_quantity': str(quantities.get(product_unit.id, Decimal('0'))),
            }
            for product_unit in obj.units.all()
        ]
