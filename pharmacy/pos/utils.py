from django.utils import timezone
from .models import Invoice


def generate_invoice_code(today=None):
    """Next free invoice code of the day: HD + YYYYMMDD + 4-digit sequence"""
    today = today or timezone.localdate()
    prefix = f"HD{today.strftime('%Y%m%d')}"
    max_number = 0
    for code in Invoice.objects.filter(code__startswith=prefix).values_list('code', flat=True):
        try:
            max_number = max(max_number, int(code[len(prefix):]))
        except ValueError:
            continue
    return f"{prefix}{max_number + 1:04d}"
