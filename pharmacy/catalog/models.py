from django.db import models
from decimal import Decimal


class Category(models.Model):
    """Product categories, nested through parent"""
    name = models.CharField(max_length=200, db_index=True)
    parent = models.ForeignKey('self', on_delete=models.PROTECT, null=True, blank=True, related_name='children')
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def get_ancestor_ids(self):
        """IDs of every category above this one, nearest first"""
        ancestor_ids = []
        seen = {self.pk}
        current = self.parent
        while current is not None and current.pk not in seen:
            ancestor_ids.append(current.pk)
            seen.add(current.pk)
            current = current.parent
        return ancestor_ids

    def is_descendant_of(self, other):
        return other is not None and other.pk in self.get_ancestor_ids()

    class Meta:
        db_table = 'categories'
        ordering = ['name']
        verbose_name_plural = 'categories'


class Unit(models.Model):
    """Unit of measure (tablet, blister, box, bottle...)"""
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'units'
        ordering = ['name']


class UsageRoute(models.Model):
    """Route of administration (oral, topical, injection...)"""
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'usage_routes'
        ordering = ['name']


class Product(models.Model):
    """Sellable product; quantities and prices live on its ProductUnits"""
    code = models.CharField(max_length=100, unique=True, db_index=True)
    name = models.CharField(max_length=200, db_index=True)
    description = models.TextField(blank=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='products')
    usage_route = models.ForeignKey(UsageRoute, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    compartment = models.ForeignKey('locations.Compartment', on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    base_unit = models.ForeignKey(Unit, on_delete=models.PROTECT, null=True, blank=True, related_name='base_unit_products')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.code} - {self.name}"

    def get_base_product_unit(self):
        return self.units.filter(is_base_unit=True).select_related('unit').first()

    class Meta:
        db_table = 'products'
        ordering = ['name']


class ProductUnit(models.Model):
    """
    A unit a product is bought and sold in.

    conversion_factor is the number of base units in one of this unit; the
    base unit itself has factor 1. Cost and selling prices are stored per
    unit and never derived from the base unit.
    """
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='units')
    unit = models.ForeignKey(Unit, on_delete=models.PROTECT, related_name='product_units')
    conversion_factor = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('1.000'))
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    is_base_unit = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.code} / {self.unit.name}"

    class Meta:
        db_table = 'product_units'
        unique_together = [['product', 'unit']]
        ordering = ['-is_base_unit', 'conversion_factor']
