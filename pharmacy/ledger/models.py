from django.db import models
from django.utils import timezone
from decimal import Decimal


class Transaction(models.Model):
    """Cash ledger entry: money received from sales or paid out for purchases and expenses"""
    TYPE_CHOICES = [
        ('income', 'Income'),
        ('expense', 'Expense'),
    ]

    RELATED_TYPE_CHOICES = [
        ('invoice', 'Invoice'),
        ('purchase', 'Purchase Order'),
        ('other', 'Other'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('transfer', 'Bank Transfer'),
        ('credit', 'Credit'),
    ]

    date = models.DateTimeField(default=timezone.now)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, blank=True)
    description = models.TextField(blank=True)
    user = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions')
    related_type = models.CharField(max_length=20, choices=RELATED_TYPE_CHOICES, default='other')
    invoice = models.ForeignKey('pos.Invoice', on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions')
    purchase_order = models.ForeignKey('purchasing.PurchaseOrder', on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.get_type_display()} {self.amount} ({self.get_related_type_display()})"

    @property
    def is_manual(self):
        return self.related_type == 'other'

    class Meta:
        db_table = 'transactions'
        ordering = ['-date', '-id']
        indexes = [
            models.Index(fields=['-date'], name='idx_transactions_date'),
            models.Index(fields=['type', 'related_type'], name='idx_transactions_type'),
        ]
