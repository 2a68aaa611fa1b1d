from rest_framework import serializers
from .models import Cabinet, Row, Compartment


class NamedLocationSerializer(serializers.ModelSerializer):
    """Names are required and stored trimmed"""

    def validate_name(self, value):
        value = (value or '').strip()
        if not value:
            raise serializers.ValidationError('Name is required')
        return value

    def validate_description(self, value):
        return (value or '').strip()


class CompartmentSerializer(NamedLocationSerializer):
    product_count = serializers.SerializerMethodField()
    location = serializers.CharField(source='location_label', read_only=True)

    class Meta:
        model = Compartment
        fields = ['id', 'row', 'name', 'description', 'location', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['row', 'created_at', 'updated_at']

    def get_product_count(self, obj):
        count = getattr(obj, 'product_count', None)
        return count if count is not None else obj.products.count()


class RowSerializer(NamedLocationSerializer):
    compartment_count = serializers.SerializerMethodField()

    class Meta:
        model = Row
        fields = ['id', 'cabinet', 'name', 'description', 'compartment_count', 'created_at', 'updated_at']
        read_only_fields = ['cabinet', 'created_at', 'updated_at']

    def get_compartment_count(self, obj):
        count = getattr(obj, 'compartment_count', None)
        return count if count is not None else obj.compartments.count()


class RowDetailSerializer(RowSerializer):
    compartments = CompartmentSerializer(many=True, read_only=True)

    class Meta(RowSerializer.Meta):
        fields = RowSerializer.Meta.fields + ['compartments']


class CabinetSerializer(NamedLocationSerializer):
    row_count = serializers.SerializerMethodField()

    class Meta:
        model = Cabinet
        fields = ['id', 'name', 'description', 'row_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_row_count(self, obj):
        count = getattr(obj, 'row_count', None)
        return count if count is not None else obj.rows.count()


class CabinetDetailSerializer(CabinetSerializer):
    rows = RowSerializer(many=True, read_only=True)

    class Meta(CabinetSerializer.Meta):
        fields = CabinetSerializer.Meta.fields + ['rows']
