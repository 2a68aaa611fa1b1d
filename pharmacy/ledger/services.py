import logging
from decimal import Decimal

from django.utils import timezone

from .models import Transaction

logger = logging.getLogger('pharmacy.ledger')


def record_transaction(type, amount, user=None, description='', related_type='other',
                       invoice=None, purchase_order=None, payment_method='', date=None):
    """Write one ledger entry; amounts are always positive, the type gives the direction"""
    amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    if amount <= 0:
        raise ValueError('Transaction amount must be greater than 0')
    entry = Transaction.objects.create(
        date=date or timezone.now(),
        type=type,
        amount=amount.quantize(Decimal('0.01')),
        payment_method=payment_method or '',
        description=description,
        user=user if user is not None and user.is_authenticated else None,
        related_type=related_type,
        invoice=invoice,
        purchase_order=purchase_order,
    )
    logger.info(f"Recorded {type} transaction {entry.id} of {entry.amount} ({related_type})")
    return entry
