from django.utils import timezone
from .models import PurchaseOrder


def generate_purchase_order_code(today=None):
    """Next free code of the form PO-YYYYMM-NNNN for the current month"""
    today = today or timezone.localdate()
    prefix = f"PO-{today.strftime('%Y%m')}-"
    max_number = 0
    for code in PurchaseOrder.objects.filter(code__startswith=prefix).values_list('code', flat=True):
        try:
            max_number = max(max_number, int(code[len(prefix):]))
        except ValueError:
            continue
    return f"{prefix}{max_number + 1:04d}"
