from django.db import models
from django.utils import timezone
from decimal import Decimal


class Invoice(models.Model):
    """Point of sale invoice"""
    STATUS_CHOICES = [
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('transfer', 'Bank Transfer'),
        ('credit', 'Credit'),
    ]

    code = models.CharField(max_length=50, unique=True)
    customer_name = models.CharField(max_length=200, blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)
    user = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices')
    invoice_date = models.DateTimeField(default=timezone.now)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    discount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    final_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')
    notes = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='cancelled_invoices')
    cancel_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.code

    class Meta:
        db_table = 'invoices'
        ordering = ['-invoice_date', '-id']
        indexes = [
            models.Index(fields=['-invoice_date'], name='idx_invoice_date'),
            models.Index(fields=['status', '-invoice_date'], name='idx_invoice_status_date'),
            models.Index(fields=['user', '-invoice_date'], name='idx_invoice_user_date'),
        ]


class InvoiceItem(models.Model):
    """
    Invoice line.

    allocations keeps the [inventory id, quantity] pairs the line consumed,
    so cancelling the invoice can give the stock back to the same lots.
    """
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('catalog.Product', on_delete=models.PROTECT, related_name='invoice_items')
    product_unit = models.ForeignKey('catalog.ProductUnit', on_delete=models.PROTECT, related_name='invoice_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    allocations = models.JSONField(default=list, blank=True)

    def __str__(self):
        return f"{self.product} x {self.quantity}"

    class Meta:
        db_table = 'invoice_items'
        ordering = ['id']
        indexes = [
            models.Index(fields=['invoice', 'product'], name='idx_invitem_invoice_product'),
        ]
