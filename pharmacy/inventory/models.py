from datetime import date
from decimal import Decimal

from django.db import models
from django.db.models import F, Value
from django.db.models.functions import Coalesce


class Inventory(models.Model):
    """
    One stock lot: a quantity of a product held in one of its units,
    identified by batch number and expiry date.

    Unique per (product, product_unit, batch_number, expiry_date). Batch and
    expiry are nullable, so the unique index is built on their coalesced
    values and a missing batch or expiry counts as one value.
    """
    product = models.ForeignKey('catalog.Product', on_delete=models.PROTECT, related_name='inventory_lots')
    product_unit = models.ForeignKey('catalog.ProductUnit', on_delete=models.PROTECT, related_name='inventory_lots')
    batch_number = models.CharField(max_length=100, blank=True, null=True)
    expiry_date = models.DateField(null=True, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        batch = self.batch_number or 'no batch'
        expiry = self.expiry_date.isoformat() if self.expiry_date else 'no expiry'
        return f"{self.product.code} / {self.product_unit.unit.name} ({batch}, {expiry}): {self.quantity}"

    @property
    def base_quantity(self):
        return self.quantity * self.product_unit.conversion_factor

    class Meta:
        db_table = 'inventory'
        verbose_name_plural = 'inventory'
        indexes = [
            models.Index(fields=['product', 'product_unit'], name='idx_inventory_product_unit'),
            models.Index(fields=['expiry_date'], name='idx_inventory_expiry'),
        ]
        constraints = [
            models.UniqueConstraint(
                F('product'),
                F('product_unit'),
                Coalesce('batch_number', Value('')),
                Coalesce('expiry_date', Value(date(1, 1, 1))),
                name='uniq_inventory_lot',
            ),
        ]
