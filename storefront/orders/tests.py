"""
Test suite for the orders module
Tests: order draft editing and validation, two-phase persistence, status rules, order endpoints
"""
from decimal import Decimal
from itertools import permutations

from django.core.cache import cache
from django.db import DatabaseError
from django.test import TestCase, SimpleTestCase, override_settings
from rest_framework import status

from storefront.core.exceptions import RemoteWriteFailure, ValidationFailure
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.orders.composer import (
    ORDER_ITEM_MAX_QUANTITY, DraftLineItem, LineItemIndexError, OrderDraft, SubmissionInProgress,
    check_total, coerce_quantity, compute_total,
)
from storefront.orders.models import Order, OrderItem
from storefront.orders.persistence import (
    POLICY_COMPENSATE, POLICY_LEAVE, DjangoOrderStore, OrderStore, persist_order,
)
from storefront.orders.status import can_transition

CATALOG = [
    {'id': 'p1', 'name': 'Camisa', 'price': '10.00'},
    {'id': 'p2', 'name': 'Calça', 'price': '25.50'},
]


def ana_draft(**overrides):
    data = {
        'customer_name': 'Ana',
        'customer_email': 'ana@x.com',
        'items': [DraftLineItem(product_id='p1', quantity=2)],
    }
    data.update(overrides)
    return OrderDraft(**data)


class MemoryOrderStore(OrderStore):
    """In-memory store that can be told to reject a phase"""

    def __init__(self, fail_order=False, fail_items=False, fail_delete=False):
        self.fail_order = fail_order
        self.fail_items = fail_items
        self.fail_delete = fail_delete
        self.orders = {}
        self.items = []
        self.calls = []

    def insert_order(self, record):
        self.calls.append('insert_order')
        if self.fail_order:
            raise RemoteWriteFailure('order insert rejected')
        order = dict(record, id=f'o{len(self.orders) + 1}')
        self.orders[order['id']] = order
        return order

    def insert_order_items(self, records):
        self.calls.append('insert_order_items')
        if self.fail_items:
            raise DatabaseError('items insert rejected')
        self.items.extend(records)
        return records

    def delete_order(self, order_id):
        self.calls.append('delete_order')
        if self.fail_delete:
            raise DatabaseError('delete rejected')
        self.orders.pop(order_id, None)


class OrderDraftTests(SimpleTestCase):
    """Test line item editing, totals and validation"""

    def test_add_line_item_uses_first_product(self):
        draft = OrderDraft()
        item = draft.add_line_item(CATALOG)
        self.assertEqual(item, DraftLineItem(product_id='p1', quantity=1))
        self.assertEqual(len(draft.items), 1)

    def test_add_line_item_empty_catalog(self):
        draft = OrderDraft()
        self.assertIsNone(draft.add_line_item([]))
        self.assertEqual(draft.items, [])

    def test_remove_line_item(self):
        draft = OrderDraft()
        draft.add_line_item(CATALOG)
        draft.add_line_item(CATALOG)
        draft.set_line_item_product(1, 'p2')
        removed = draft.remove_line_item(0)
        self.assertEqual(removed.product_id, 'p1')
        self.assertEqual([i.product_id for i in draft.items], ['p2'])

    def test_remove_out_of_range(self):
        draft = OrderDraft()
        with self.assertRaises(LineItemIndexError):
            draft.remove_line_item(0)
        draft.add_line_item(CATALOG)
        with self.assertRaises(IndexError):
            draft.remove_line_item(-1)

    def test_invalid_quantity_leaves_item_unchanged(self):
        draft = OrderDraft()
        draft.add_line_item(CATALOG)
        draft.set_line_item_quantity(0, '3')
        for bad in ('abc', '0', -1, '2.5', ''):
            with self.assertRaises(ValidationFailure):
                draft.set_line_item_quantity(0, bad)
        self.assertEqual(draft.items[0].quantity, 3)

    def test_coerce_quantity(self):
        self.assertEqual(coerce_quantity(' 4 '), 4)
        self.assertEqual(coerce_quantity(2.0), 2)
        with self.assertRaises(ValidationFailure):
            coerce_quantity(True)

    def test_compute_total(self):
        items = [DraftLineItem('p1', 2), DraftLineItem('p2', 1)]
        self.assertEqual(compute_total(items, CATALOG), Decimal('45.50'))

    def test_compute_total_missing_product_counts_zero(self):
        items = [DraftLineItem('p1', 1), DraftLineItem('gone', 5)]
        self.assertEqual(compute_total(items, CATALOG), Decimal('10.00'))

    def test_compute_total_empty(self):
        self.assertEqual(compute_total([], CATALOG), Decimal('0'))

    def test_compute_total_ignores_item_order(self):
        items = [DraftLineItem('p1', 2), DraftLineItem('gone', 4), DraftLineItem('p2', 3)]
        expected = compute_total(items, CATALOG)
        self.assertEqual(expected, Decimal('96.50'))
        for ordering in permutations(items):
            self.assertEqual(compute_total(list(ordering), CATALOG), expected)

    def test_quantity_cap(self):
        self.assertEqual(coerce_quantity(ORDER_ITEM_MAX_QUANTITY), ORDER_ITEM_MAX_QUANTITY)
        with self.assertRaises(ValidationFailure):
            coerce_quantity(ORDER_ITEM_MAX_QUANTITY + 1)

        draft = ana_draft(items=[DraftLineItem('p1', ORDER_ITEM_MAX_QUANTITY + 1)])
        self.assertEqual(draft.validate().field, 'items[0].quantity')
        draft.items[0].quantity = ORDER_ITEM_MAX_QUANTITY
        self.assertIsNone(draft.validate())

    def test_check_total(self):
        self.assertEqual(check_total(Decimal('99999999.99')), Decimal('99999999.99'))
        with self.assertRaises(ValidationFailure) as ctx:
            check_total(Decimal('100000000.00'))
        self.assertEqual(ctx.exception.field, 'items')

    def test_valid_draft(self):
        self.assertIsNone(ana_draft().validate())

    def test_validation_order(self):
        draft = OrderDraft(customer_name=' ', customer_email='bad', items=[])
        self.assertEqual(draft.validate().field, 'customer_name')
        draft.customer_name = 'Ana'
        self.assertEqual(draft.validate().field, 'customer_email')
        draft.customer_email = 'ana@x.com'
        self.assertEqual(draft.validate().field, 'items')
        draft.items = [DraftLineItem('p1', 0)]
        self.assertEqual(draft.validate().field, 'items[0].quantity')

    def test_validation_limits(self):
        self.assertEqual(ana_draft(customer_name='a' * 201).validate().field, 'customer_name')
        self.assertEqual(ana_draft(customer_phone='1' * 21).validate().field, 'customer_phone')
        self.assertEqual(ana_draft(status='lost').validate().field, 'status')

    def test_from_payload(self):
        draft = OrderDraft.from_payload({
            'customer_name': 'Ana',
            'customer_email': 'ana@x.com',
            'items': [{'product_id': 'p1', 'quantity': '2'}, {'product_id': 'p2', 'quantity': 'x'}],
        })
        self.assertEqual(draft.items[0], DraftLineItem('p1', 2))
        self.assertIsNone(draft.items[1].quantity)
        self.assertEqual(draft.validate().field, 'items[1].quantity')

    def test_from_payload_items_must_be_list(self):
        with self.assertRaises(ValidationFailure):
            OrderDraft.from_payload({'items': 'p1'})

    def test_from_payload_requires_object(self):
        for data in ([], 'order', None):
            with self.assertRaises(ValidationFailure) as ctx:
                OrderDraft.from_payload(data)
            self.assertEqual(ctx.exception.field, 'body')


@override_settings(STOREFRONT={'ORDER_ITEMS_FAILURE_POLICY': 'leave', 'LOW_STOCK_THRESHOLD': 10})
class PersistOrderTests(SimpleTestCase):
    """Test the two-phase write against an in-memory store"""

    def test_submit_writes_header_then_items(self):
        store = MemoryOrderStore()
        order = ana_draft().submit(CATALOG, store)

        self.assertEqual(store.calls, ['insert_order', 'insert_order_items'])
        self.assertEqual(order['total'], Decimal('20.00'))
        self.assertEqual(store.items, [{
            'order_id': order['id'], 'product_id': 'p1', 'quantity': 2, 'unit_price': Decimal('10.00'),
        }])

    def test_invalid_draft_never_reaches_store(self):
        store = MemoryOrderStore()
        with self.assertRaises(ValidationFailure):
            ana_draft(items=[]).submit(CATALOG, store)
        self.assertEqual(store.calls, [])

    def test_total_too_large_never_reaches_store(self):
        store = MemoryOrderStore()
        catalog = [{'id': 'p1', 'price': '99999999.99'}]
        with self.assertRaises(ValidationFailure) as ctx:
            ana_draft().submit(catalog, store)
        self.assertEqual(ctx.exception.field, 'items')
        self.assertEqual(store.calls, [])

    def test_header_failure_writes_nothing(self):
        store = MemoryOrderStore(fail_order=True)
        with self.assertRaises(RemoteWriteFailure) as ctx:
            ana_draft().submit(CATALOG, store)
        self.assertEqual(ctx.exception.phase, 'order')
        self.assertIsNone(ctx.exception.order_id)
        self.assertEqual(store.calls, ['insert_order'])

    def test_items_failure_leaves_orphan_header(self):
        store = MemoryOrderStore(fail_items=True)
        with self.assertLogs('storefront.orders.persistence', level='ERROR'):
            with self.assertRaises(RemoteWriteFailure) as ctx:
                persist_order(ana_draft(), CATALOG, store)
        self.assertEqual(ctx.exception.phase, 'items')
        self.assertEqual(ctx.exception.order_id, 'o1')
        self.assertFalse(ctx.exception.compensated)
        self.assertEqual(store.orders['o1']['total'], Decimal('20.00'))
        self.assertEqual(store.items, [])

    def test_items_failure_compensates(self):
        store = MemoryOrderStore(fail_items=True)
        with self.assertRaises(RemoteWriteFailure) as ctx:
            persist_order(ana_draft(), CATALOG, store, on_items_failure=POLICY_COMPENSATE)
        self.assertTrue(ctx.exception.compensated)
        self.assertEqual(store.orders, {})
        self.assertEqual(store.calls[-1], 'delete_order')

    def test_failed_compensation_reported(self):
        store = MemoryOrderStore(fail_items=True, fail_delete=True)
        with self.assertRaises(RemoteWriteFailure) as ctx:
            persist_order(ana_draft(), CATALOG, store, on_items_failure=POLICY_COMPENSATE)
        self.assertFalse(ctx.exception.compensated)
        self.assertIn('o1', store.orders)

    def test_unknown_policy(self):
        with self.assertRaises(ValueError):
            persist_order(ana_draft(), CATALOG, MemoryOrderStore(), on_items_failure='retry')

    def test_duplicate_submit_rejected(self):
        draft = ana_draft()
        attempts = []

        class ReentrantStore(MemoryOrderStore):
            def insert_order(self, record):
                try:
                    draft.submit(CATALOG, self)
                except SubmissionInProgress:
                    attempts.append('rejected')
                return super().insert_order(record)

        store = ReentrantStore()
        draft.submit(CATALOG, store)
        self.assertEqual(attempts, ['rejected'])
        self.assertEqual(len(store.orders), 1)
        self.assertFalse(draft.is_submitting)

    def test_submitting_flag_reset_after_failure(self):
        draft = ana_draft()
        with self.assertRaises(RemoteWriteFailure):
            draft.submit(CATALOG, MemoryOrderStore(fail_order=True))
        self.assertFalse(draft.is_submitting)
        draft.submit(CATALOG, MemoryOrderStore())


class DjangoOrderStoreTests(TestCase):
    """Test persistence against the database"""

    def setUp(self):
        cache.clear()
        self.shirt = TestDataFactory.create_product(name='Camisa', price='10.00')
        self.catalog = [self.shirt]

    def test_end_to_end(self):
        draft = ana_draft(items=[DraftLineItem(self.shirt.id, 2)])
        order = draft.submit(self.catalog, DjangoOrderStore())

        order.refresh_from_db()
        self.assertEqual(order.total, Decimal('20.00'))
        item = order.items.get()
        self.assertEqual(item.product, self.shirt)
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.unit_price, Decimal('10.00'))

    def test_price_change_does_not_touch_stored_order(self):
        order = ana_draft(items=[DraftLineItem(self.shirt.id, 1)]).submit(self.catalog, DjangoOrderStore())
        self.shirt.price = Decimal('99.00')
        self.shirt.save()
        order.refresh_from_db()
        self.assertEqual(order.total, Decimal('10.00'))
        self.assertEqual(order.items.get().unit_price, Decimal('10.00'))

    def test_vanished_product_kept_at_zero(self):
        order = ana_draft(items=[DraftLineItem(self.shirt.id, 1), DraftLineItem(987654, 3)]).submit(
            self.catalog, DjangoOrderStore())
        missing = order.items.get(product__isnull=True)
        self.assertEqual(missing.unit_price, Decimal('0'))
        self.assertEqual(missing.quantity, 3)

    def test_orphan_header_visible_after_items_failure(self):
        class FailingItemsStore(DjangoOrderStore):
            def insert_order_items(self, records):
                raise DatabaseError('items insert rejected')

        draft = ana_draft(items=[DraftLineItem(self.shirt.id, 2)])
        with self.assertRaises(RemoteWriteFailure) as ctx:
            persist_order(draft, self.catalog, FailingItemsStore(), on_items_failure=POLICY_LEAVE)

        order = Order.objects.get(pk=ctx.exception.order_id)
        self.assertEqual(order.total, Decimal('20.00'))
        self.assertEqual(order.items.count(), 0)

    def test_deleting_product_keeps_order_line(self):
        order = ana_draft(items=[DraftLineItem(self.shirt.id, 2)]).submit(self.catalog, DjangoOrderStore())
        self.shirt.delete()
        item = OrderItem.objects.get(order=order)
        self.assertIsNone(item.product)
        self.assertEqual(item.get_line_total(), Decimal('20.00'))


class StatusTransitionTests(SimpleTestCase):
    """Test the status transition rule"""

    def test_lenient_allows_any_known_status(self):
        self.assertTrue(can_transition('delivered', 'pending', strict=False))
        self.assertFalse(can_transition('pending', 'lost', strict=False))

    def test_strict_forward_only(self):
        self.assertTrue(can_transition('pending', 'shipped', strict=True))
        self.assertTrue(can_transition('shipped', 'cancelled', strict=True))
        self.assertFalse(can_transition('shipped', 'pending', strict=True))
        self.assertFalse(can_transition('cancelled', 'processing', strict=True))
        self.assertFalse(can_transition('delivered', 'cancelled', strict=True))


class OrderAPITests(TestCase):
    """Test order endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.shirt = TestDataFactory.create_product(name='Camisa', price='10.00')
        self.trousers = TestDataFactory.create_product(name='Calça', price='25.50')

    def payload(self, **overrides):
        data = {
            'customer_name': 'Ana',
            'customer_email': 'ana@x.com',
            'customer_phone': '11999990000',
            'items': [
                {'product_id': self.shirt.id, 'quantity': 2},
                {'product_id': self.trousers.id, 'quantity': 1},
            ],
        }
        data.update(overrides)
        return data

    def test_create_order(self):
        response = self.client.post('/api/v1/orders/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['total']), Decimal('45.50'))
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual([i['product_name'] for i in response.data['items']], ['Camisa', 'Calça'])
        self.assertEqual(response.data['items'][0]['line_total'], '20.00')

    def test_create_order_validation(self):
        response = self.client.post('/api/v1/orders/', self.payload(items=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'items')
        self.assertFalse(Order.objects.exists())

    def test_create_order_payload_must_be_object(self):
        response = self.client.post('/api/v1/orders/', [], format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'body')

    def test_create_order_quantity_too_large(self):
        items = [{'product_id': self.shirt.id, 'quantity': 10 ** 9}]
        response = self.client.post('/api/v1/orders/', self.payload(items=items), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'items[0].quantity')
        self.assertFalse(Order.objects.exists())

        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 0)

    def test_create_order_total_too_large(self):
        expensive = TestDataFactory.create_product(name='Relógio', price='99999999.00')
        items = [{'product_id': expensive.id, 'quantity': 2}]
        response = self.client.post('/api/v1/orders/', self.payload(items=items), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'items')
        self.assertFalse(Order.objects.exists())

    def test_create_order_bad_email(self):
        response = self.client.post('/api/v1/orders/', self.payload(customer_email='ana'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'customer_email')

    def test_list_shows_new_order(self):
        self.client.get('/api/v1/orders/')
        self.client.post('/api/v1/orders/', self.payload(), format='json')
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['status_label'], 'Pending')

    def test_list_filter_by_status(self):
        TestDataFactory.create_order(status='pending')
        TestDataFactory.create_order(status='shipped', customer_name='Bruno')
        response = self.client.get('/api/v1/orders/', {'status': 'shipped'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['customer_name'], 'Bruno')

    def test_list_search(self):
        TestDataFactory.create_order(customer_name='Ana Souza')
        TestDataFactory.create_order(customer_name='Bruno', customer_email='bruno@test.com')
        response = self.client.get('/api/v1/orders/', {'search': 'souza'})
        self.assertEqual(response.data['count'], 1)

    def test_list_invalid_status_filter(self):
        response = self.client.get('/api/v1/orders/', {'status': 'lost'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_detail_includes_items(self):
        order = TestDataFactory.create_order(total='20.00')
        TestDataFactory.create_order_item(order, self.shirt, quantity=2)
        response = self.client.get(f'/api/v1/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['items'][0]['product_name'], 'Camisa')

    def test_update_status(self):
        order = TestDataFactory.create_order()
        response = self.client.patch(f'/api/v1/orders/{order.id}/status/', {'status': 'shipped'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status_variant'], 'default')
        order.refresh_from_db()
        self.assertEqual(order.status, 'shipped')

    def test_update_status_unknown_value(self):
        order = TestDataFactory.create_order()
        response = self.client.patch(f'/api/v1/orders/{order.id}/status/', {'status': 'lost'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(STOREFRONT={'STRICT_STATUS_TRANSITIONS': True, 'LOW_STOCK_THRESHOLD': 10})
    def test_strict_transitions(self):
        order = TestDataFactory.create_order(status='delivered')
        response = self.client.patch(f'/api/v1/orders/{order.id}/status/', {'status': 'pending'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'status')
        order.refresh_from_db()
        self.assertEqual(order.status, 'delivered')
