"""
Order status values, their display metadata and the transition rule.

By default any status can be set from any other, which lets staff correct
mistakes by hand. With STOREFRONT['STRICT_STATUS_TRANSITIONS'] enabled only
forward moves are allowed, and cancelling is possible until the order is
delivered.
"""
from django.conf import settings

PENDING = 'pending'
PROCESSING = 'processing'
SHIPPED = 'shipped'
DELIVERED = 'delivered'
CANCELLED = 'cancelled'

STATUS_CHOICES = [
    (PENDING, 'Pending'),
    (PROCESSING, 'Processing'),
    (SHIPPED, 'Shipped'),
    (DELIVERED, 'Delivered'),
    (CANCELLED, 'Cancelled'),
]

ORDER_STATUSES = tuple(value for value, _ in STATUS_CHOICES)
STATUS_LABELS = dict(STATUS_CHOICES)

STATUS_VARIANTS = {
    PENDING: 'warning',
    PROCESSING: 'default',
    SHIPPED: 'default',
    DELIVERED: 'success',
    CANCELLED: 'destructive',
}

TERMINAL_STATUSES = (DELIVERED, CANCELLED)

FORWARD_TRANSITIONS = {
    PENDING: (PROCESSING, SHIPPED, DELIVERED, CANCELLED),
    PROCESSING: (SHIPPED, DELIVERED, CANCELLED),
    SHIPPED: (DELIVERED, CANCELLED),
    DELIVERED: (),
    CANCELLED: (),
}


def strict_transitions_enabled():
    return settings.STOREFRONT.get('STRICT_STATUS_TRANSITIONS', False)


def can_transition(current, new, strict=None):
    """Whether an order in ``current`` may be moved to ``new``"""
    if new not in ORDER_STATUSES:
        return False
    if current == new:
        return True
    if strict is None:
        strict = strict_transitions_enabled()
    if not strict:
        return True
    return new in FORWARD_TRANSITIONS.get(current, ())
