from django.db import models
from django.db.models import Sum
from decimal import Decimal


class PurchaseOrder(models.Model):
    """Goods received from a supplier, with its payment state"""
    PAYMENT_STATUS_CHOICES = [
        ('unpaid', 'Unpaid'),
        ('partial', 'Partially Paid'),
        ('paid', 'Paid'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('transfer', 'Bank Transfer'),
        ('credit', 'Credit'),
    ]

    code = models.CharField(max_length=50, unique=True)
    supplier = models.ForeignKey('parties.Supplier', on_delete=models.PROTECT, related_name='purchase_orders')
    user = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='purchase_orders')
    order_date = models.DateField()
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='unpaid')
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.code

    def get_paid_amount(self):
        """Sum of expense transactions recorded against this order"""
        total = self.transactions.filter(type='expense').aggregate(total=Sum('amount'))['total']
        return total or Decimal('0.00')

    def get_remaining_amount(self):
        return max(self.total_amount - self.get_paid_amount(), Decimal('0.00'))

    def recalculate_total(self, save=True):
        self.total_amount = sum((item.get_line_total() for item in self.items.all()), Decimal('0.00'))
        if save:
            self.save(update_fields=['total_amount', 'updated_at'])
        return self.total_amount

    def refresh_payment_status(self, save=True):
        """Derive unpaid/partial/paid from the recorded payments against the current total"""
        paid = self.get_paid_amount()
        if paid <= 0:
            self.payment_status = 'unpaid'
        elif paid >= self.total_amount:
            self.payment_status = 'paid'
        else:
            self.payment_status = 'partial'
        if save:
            self.save(update_fields=['payment_status', 'updated_at'])
        return self.payment_status

    class Meta:
        db_table = 'purchase_orders'
        ordering = ['-order_date', '-id']
        indexes = [
            models.Index(fields=['payment_status'], name='idx_po_payment_status'),
            models.Index(fields=['supplier', 'payment_status'], name='idx_po_supplier_status'),
            models.Index(fields=['-order_date', '-id'], name='idx_po_date'),
        ]


class PurchaseOrderItem(models.Model):
    """Purchase order line; received into the matching inventory lot"""
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('catalog.Product', on_delete=models.PROTECT, related_name='purchase_items')
    product_unit = models.ForeignKey('catalog.ProductUnit', on_delete=models.PROTECT, related_name='purchase_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    batch_number = models.CharField(max_length=100, blank=True, null=True)
    expiry_date = models.DateField(blank=True, null=True)

    def __str__(self):
        return f"{self.product} x {self.quantity}"

    def get_line_total(self):
        return self.quantity * self.cost_price

    class Meta:
        db_table = 'purchase_order_items'
        ordering = ['id']
        indexes = [
            models.Index(fields=['purchase_order', 'product'], name='idx_poitem_po_product'),
        ]
