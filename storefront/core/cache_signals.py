"""
Cache invalidation signals
Automatically invalidate cached reads when catalog or order rows change
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_catalog_reads, invalidate_order_reads

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

CATALOG_MODELS = ('Product', 'Category')
ORDER_MODELS = ('Order', 'OrderItem')


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


@receiver([post_save, post_delete])
def invalidate_reads_on_change(sender, instance, **kwargs):
    """Invalidate cached reads when products, categories or orders change"""
    if is_suspended():
        return

    model_name = sender.__name__
    try:
        if model_name in CATALOG_MODELS:
            invalidate_catalog_reads()
        elif model_name in ORDER_MODELS:
            invalidate_order_reads()
    except Exception as e:
        logger.warning(f"Error invalidating cache for {model_name}: {e}")
