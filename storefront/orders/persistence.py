"""
Two-phase order persistence: insert the order header, then its line items.

The two inserts are separate writes. When the second one fails the header
has already been stored; what happens next is controlled by the items-failure
policy (STOREFRONT['ORDER_ITEMS_FAILURE_POLICY']):

- ``leave``: keep the header without items and report its id
- ``compensate``: delete the header again (best effort)
"""
import logging

from django.conf import settings
from django.db import DatabaseError, transaction

from storefront.catalog.models import Product
from storefront.core.cache_utils import invalidate_catalog_reads, invalidate_order_reads
from storefront.core.exceptions import RemoteWriteFailure
from .composer import catalog_index, check_total, compute_total, price_of
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

POLICY_LEAVE = 'leave'
POLICY_COMPENSATE = 'compensate'
ITEMS_FAILURE_POLICIES = (POLICY_LEAVE, POLICY_COMPENSATE)

PHASE_ORDER = 'order'
PHASE_ITEMS = 'items'

WRITE_ERRORS = (DatabaseError, RemoteWriteFailure)


class OrderStore:
    """
    Write side of the order data store.

    Implementations raise DatabaseError or RemoteWriteFailure when a write is
    rejected.
    """

    def insert_order(self, record):
        """Insert an order header and return it (anything with an ``id``)"""
        raise NotImplementedError

    def insert_order_items(self, records):
        """Insert all line item records in one write"""
        raise NotImplementedError

    def delete_order(self, order_id):
        raise NotImplementedError


class DjangoOrderStore(OrderStore):
    """OrderStore backed by the Order/OrderItem tables"""

    def insert_order(self, record):
        with transaction.atomic():
            return Order.objects.create(**record)

    def insert_order_items(self, records):
        # Items pointing at products that no longer exist keep their price but
        # lose the product link
        wanted = set()
        for record in records:
            try:
                wanted.add(int(record['product_id']))
            except (TypeError, ValueError):
                continue
        existing = set(Product.objects.filter(pk__in=wanted).values_list('pk', flat=True))

        items = []
        for record in records:
            try:
                product_id = int(record['product_id'])
            except (TypeError, ValueError):
                product_id = None
            items.append(OrderItem(
                order_id=record['order_id'],
                product_id=product_id if product_id in existing else None,
                quantity=record['quantity'],
                unit_price=record['unit_price'],
            ))
        with transaction.atomic():
            return OrderItem.objects.bulk_create(items)

    def delete_order(self, order_id):
        with transaction.atomic():
            Order.objects.filter(pk=order_id).delete()


def _record_id(record):
    if isinstance(record, dict):
        return record.get('id')
    return getattr(record, 'id', None)


def get_items_failure_policy(policy=None):
    policy = policy or settings.STOREFRONT.get('ORDER_ITEMS_FAILURE_POLICY', POLICY_LEAVE)
    if policy not in ITEMS_FAILURE_POLICIES:
        raise ValueError(f"Unknown order items failure policy '{policy}'")
    return policy


def build_item_records(order_id, items, catalog):
    """Line item records with the unit price captured from the catalog now"""
    index = catalog_index(catalog)
    return [
        {
            'order_id': order_id,
            'product_id': item.product_id,
            'quantity': item.quantity,
            'unit_price': price_of(item.product_id, index),
        }
        for item in items
    ]


def persist_order(draft, catalog, store, on_items_failure=None):
    """
    Store a validated draft: header first, then all line items.

    Returns the stored order header. Raises RemoteWriteFailure with
    ``phase='order'`` when nothing was written, or ``phase='items'`` (carrying
    ``order_id`` and ``compensated``) when the header exists but its items
    could not be stored.
    """
    policy = get_items_failure_policy(on_items_failure)
    index = catalog_index(catalog)
    header = draft.to_header(total=check_total(compute_total(draft.items, index)))

    try:
        order = store.insert_order(header)
    except WRITE_ERRORS as e:
        logger.error(f"Failed to create order for {header['customer_email']}: {str(e)}")
        raise RemoteWriteFailure('Error creating order', phase=PHASE_ORDER) from e

    order_id = _record_id(order)
    records = build_item_records(order_id, draft.items, index)
    try:
        store.insert_order_items(records)
    except WRITE_ERRORS as e:
        compensated = False
        if policy == POLICY_COMPENSATE:
            try:
                store.delete_order(order_id)
                compensated = True
                logger.warning(f"Order {order_id} removed after its items failed to save: {str(e)}")
            except WRITE_ERRORS as delete_error:
                logger.error(f"Could not remove order {order_id} after items failure: {str(delete_error)}")
        if not compensated:
            logger.error(f"Order {order_id} saved without items: {str(e)}")
        invalidate_order_reads()
        raise RemoteWriteFailure(
            'Error creating order items', phase=PHASE_ITEMS, order_id=order_id, compensated=compensated,
        ) from e

    invalidate_order_reads()
    invalidate_catalog_reads()
    logger.info(f"Created order {order_id} with {len(records)} items, total {header['total']}")
    return order
