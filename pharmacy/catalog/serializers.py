from decimal import Decimal

from django.db import transaction
from rest_framework import serializers
from .models import Category, Unit, UsageRoute, Product, ProductUnit


def validate_min_length(value, field_label, min_length=2):
    value = (value or '').strip()
    if len(value) < min_length:
        raise serializers.ValidationError(f'{field_label} must be at least {min_length} characters')
    return value


class CategorySerializer(serializers.ModelSerializer):
    parent_name = serializers.CharField(source='parent.name', read_only=True, allow_null=True)
    product_count = serializers.SerializerMethodField()
    children_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'parent', 'parent_name', 'description', 'product_count',
                  'children_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_product_count(self, obj):
        count = getattr(obj, 'product_count', None)
        return count if count is not None else obj.products.count()

    def get_children_count(self, obj):
        count = getattr(obj, 'children_count', None)
        return count if count is not None else obj.children.count()

    def validate_name(self, value):
        value = (value or '').strip()
        if not value:
            raise serializers.ValidationError('Category name is required')
        return value

    def validate_parent(self, parent):
        """A category cannot become its own parent or the child of one of its descendants"""
        if parent is None or self.instance is None:
            return parent
        if parent.pk == self.instance.pk:
            raise serializers.ValidationError('A category cannot be its own parent')
        if parent.is_descendant_of(self.instance):
            raise serializers.ValidationError('A category cannot be moved under one of its subcategories')
        return parent


class CategoryTreeSerializer(serializers.ModelSerializer):
    children = serializers.SerializerMethodField()
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'product_count', 'children']

    def get_product_count(self, obj):
        counts = self.context.get('product_counts', {})
        return counts.get(obj.id, 0)

    def get_children(self, obj):
        children_map = self.context.get('children_map', {})
        children = children_map.get(obj.id, [])
        return CategoryTreeSerializer(children, many=True, context=self.context).data


class UnitSerializer(serializers.ModelSerializer):
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Unit
        fields = ['id', 'name', 'description', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_product_count(self, obj):
        count = getattr(obj, 'product_count', None)
        return count if count is not None else obj.product_units.values('product').distinct().count()

    def validate_name(self, value):
        value = validate_min_length(value, 'Unit name')
        queryset = Unit.objects.filter(name__iexact=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A unit with this name already exists')
        return value


class UsageRouteSerializer(serializers.ModelSerializer):
    class Meta:
        model = UsageRoute
        fields = ['id', 'name', 'description', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_name(self, value):
        value = validate_min_length(value, 'Usage route name')
        queryset = UsageRoute.objects.filter(name__iexact=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A usage route with this name already exists')
        return value


class ProductUnitSerializer(serializers.ModelSerializer):
    unit_name = serializers.CharField(source='unit.name', read_only=True)
    available_quantity = serializers.SerializerMethodField()

    class Meta:
        model = ProductUnit
        fields = ['id', 'product', 'unit', 'unit_name', 'conversion_factor', 'cost_price',
                  'selling_price', 'is_base_unit', 'available_quantity', 'created_at', 'updated_at']
        read_only_fields = ['product', 'is_base_unit', 'created_at', 'updated_at']

    def get_available_quantity(self, obj):
        quantities = self.context.get('available_quantities')
        if quantities is None:
            return None
        return str(quantities.get(obj.id, Decimal('0')))

    def validate_conversion_factor(self, value):
        if value is None or value <= 0:
            raise serializers.ValidationError('Conversion factor must be greater than 0')
        return value

    def validate_cost_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Cost price cannot be negative')
        return value

    def validate_selling_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Selling price cannot be negative')
        return value

    def validate(self, attrs):
        product = self.context.get('product') or (self.instance.product if self.instance else None)
        unit = attrs.get('unit')
        if product is not None and unit is not None:
            duplicates = ProductUnit.objects.filter(product=product, unit=unit)
            if self.instance:
                duplicates = duplicates.exclude(pk=self.instance.pk)
            if duplicates.exists():
                raise serializers.ValidationError({'unit': 'This unit is already attached to the product'})

        # The base unit is the reference every factor is expressed against
        if self.instance and self.instance.is_base_unit:
            factor = attrs.get('conversion_factor')
            if factor is not None and factor != Decimal('1'):
                raise serializers.ValidationError({'conversion_factor': 'The base unit must keep a conversion factor of 1'})
        return attrs

    def create(self, validated_data):
        validated_data['product'] = self.context['product']
        validated_data['is_base_unit'] = False
        return super().create(validated_data)

    def update(self, instance, validated_data):
        with transaction.atomic():
            product_unit = super().update(instance, validated_data)
            if product_unit.is_base_unit and product_unit.product.base_unit_id != product_unit.unit_id:
                Product.objects.filter(pk=product_unit.product_id).update(base_unit=product_unit.unit)
        return product_unit


class ProductListSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    base_unit_name = serializers.CharField(source='base_unit.name', read_only=True, allow_null=True)
    compartment_location = serializers.SerializerMethodField()
    stock_quantity = serializers.DecimalField(source='stock_base_quantity', max_digits=16, decimal_places=3,
                                              read_only=True, default=None)

    class Meta:
        model = Product
        fields = ['id', 'code', 'name', 'category', 'category_name', 'usage_route', 'compartment',
                  'compartment_location', 'base_unit', 'base_unit_name', 'stock_quantity',
                  'created_at', 'updated_at']

    def get_compartment_location(self, obj):
        if obj.compartment_id is None:
            return None
        return obj.compartment.location_label


class ProductSerializer(serializers.ModelSerializer):
    """
    Product detail serializer.

    On create, `unit`, `cost_price` and `selling_price` describe the base
    unit, which is created together with the product.
    """
    category_name = serializers.CharField(source='category.name', read_only=True)
    usage_route_name = serializers.CharField(source='usage_route.name', read_only=True, allow_null=True)
    base_unit_name = serializers.CharField(source='base_unit.name', read_only=True, allow_null=True)
    compartment_location = serializers.SerializerMethodField()
    units = ProductUnitSerializer(many=True, read_only=True)

    unit = serializers.PrimaryKeyRelatedField(queryset=Unit.objects.all(), write_only=True, required=False)
    cost_price = serializers.DecimalField(max_digits=12, decimal_places=2, write_only=True, required=False,
                                          min_value=Decimal('0'))
    selling_price = serializers.DecimalField(max_digits=12, decimal_places=2, write_only=True, required=False,
                                             min_value=Decimal('0'))

    class Meta:
        model = Product
        fields = ['id', 'code', 'name', 'description', 'category', 'category_name', 'usage_route',
                  'usage_route_name', 'compartment', 'compartment_location', 'base_unit', 'base_unit_name',
                  'units', 'unit', 'cost_price', 'selling_price', 'created_at', 'updated_at']
        read_only_fields = ['base_unit', 'created_at', 'updated_at']

    def get_compartment_location(self, obj):
        if obj.compartment_id is None:
            return None
        return obj.compartment.location_label

    def validate_code(self, value):
        value = validate_min_length(value, 'Product code')
        queryset = Product.objects.filter(code__iexact=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A product with this code already exists')
        return value

    def validate_name(self, value):
        return validate_min_length(value, 'Product name')

    def validate(self, attrs):
        if self.instance is None and not attrs.get('unit'):
            raise serializers.ValidationError({'unit': 'A base unit is required when creating a product'})
        return attrs

    def create(self, validated_data):
        base_unit = validated_data.pop('unit')
        cost_price = validated_data.pop('cost_price', Decimal('0.00'))
        selling_price = validated_data.pop('selling_price', Decimal('0.00'))

        with transaction.atomic():
            product = Product.objects.create(base_unit=base_unit, **validated_data)
            ProductUnit.objects.create(
                product=product,
                unit=base_unit,
                conversion_factor=Decimal('1'),
                cost_price=cost_price,
                selling_price=selling_price,
                is_base_unit=True,
            )
        return product

    def update(self, instance, validated_data):
        # Base unit prices and the base unit itself are managed through the units endpoints
        for field in ('unit', 'cost_price', 'selling_price'):
            validated_data.pop(field, None)
        return super().update(instance, validated_data)
