"""
Cache invalidation signals
Report and dashboard payloads are dropped whenever sales, purchases,
inventory lots or ledger entries change
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_report_caches

logger = logging.getLogger('pharmacy.core')

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

REPORT_SOURCE_MODELS = [
    'pos.Invoice',
    'purchasing.PurchaseOrder',
    'inventory.Inventory',
    'ledger.Transaction',
    'catalog.Product',
    'catalog.ProductUnit',
]


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation signals during bulk operations.
    Remember to call invalidate_report_caches() after the block.
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def invalidate_reports_on_change(sender, **kwargs):
    if is_suspended():
        return
    logger.debug(f"{sender.__name__} changed, scheduling report cache invalidation")
    transaction.on_commit(invalidate_report_caches)


for model_label in REPORT_SOURCE_MODELS:
    post_save.connect(invalidate_reports_on_change, sender=model_label, dispatch_uid=f'reports-save-{model_label}')
    post_delete.connect(invalidate_reports_on_change, sender=model_label, dispatch_uid=f'reports-delete-{model_label}')
