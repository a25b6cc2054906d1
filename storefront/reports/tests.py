"""
Test suite for the Reports module
Tests: dashboard stats, category breakdown, low stock, order totals and their endpoints
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase, SimpleTestCase
from rest_framework import status

from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.reports.summary import (
    UNCATEGORIZED, category_breakdown, dashboard_stats, low_stock_products, order_totals,
)


class SummaryTests(SimpleTestCase):
    """Test the aggregate functions on plain rows"""

    def setUp(self):
        self.products = [
            {'id': 1, 'name': 'Camisa', 'price': '50.00', 'stock': 4, 'category': 'Roupas'},
            {'id': 2, 'name': 'Calça', 'price': '100.00', 'stock': 12, 'category': 'Roupas'},
            {'id': 3, 'name': 'Boné', 'price': '20.00', 'stock': 1, 'category': ''},
            {'id': 4, 'name': 'Meia', 'price': '5.00', 'stock': 9, 'category': 'Acessórios'},
        ]

    def test_dashboard_stats(self):
        stats = dashboard_stats(self.products)
        self.assertEqual(stats['total_products'], 4)
        self.assertEqual(stats['low_stock_count'], 3)
        self.assertEqual(stats['total_value'], Decimal('1465.00'))
        self.assertEqual(stats['category_count'], 2)

    def test_dashboard_stats_empty(self):
        stats = dashboard_stats([])
        self.assertEqual(stats['total_products'], 0)
        self.assertEqual(stats['total_value'], Decimal('0'))

    def test_category_breakdown(self):
        rows = category_breakdown(self.products)
        self.assertEqual([r['name'] for r in rows], ['Roupas', UNCATEGORIZED, 'Acessórios'])
        self.assertEqual(rows[0]['count'], 2)
        self.assertEqual(rows[0]['value'], Decimal('1400.00'))

    def test_low_stock_sorted_ascending(self):
        rows = low_stock_products(self.products)
        self.assertEqual([r['stock'] for r in rows], [1, 4, 9])

    def test_low_stock_limit(self):
        products = [{'id': i, 'name': str(i), 'price': '1', 'stock': i} for i in range(8)]
        self.assertEqual([r['stock'] for r in low_stock_products(products)], [0, 1, 2, 3, 4])

    def test_order_totals(self):
        totals = order_totals([{'total': '20.00'}, {'total': '5.50'}])
        self.assertEqual(totals, {'total_orders': 2, 'total_revenue': Decimal('25.50')})


class ReportsTests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_dashboard(self):
        TestDataFactory.create_category(name='Roupas')
        for i in range(6):
            TestDataFactory.create_product(name=f'Produto {i}', price='10.00', stock=i * 3, category='Roupas')

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_products'], 6)
        self.assertEqual(response.data['low_stock_count'], 4)
        self.assertEqual(response.data['total_value'], 450.0)
        self.assertEqual(response.data['category_count'], 1)
        self.assertEqual(len(response.data['recent_products']), 5)

    def test_dashboard_refreshes_after_write(self):
        self.client.get('/api/v1/reports/dashboard/')
        TestDataFactory.create_product(stock=50)
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['total_products'], 1)

    def test_summary(self):
        TestDataFactory.create_product(name='Camisa', price='50.00', stock=2, category='Roupas')
        TestDataFactory.create_product(name='Boné', price='20.00', stock=30)
        TestDataFactory.create_order(total='20.00')
        TestDataFactory.create_order(total='15.50', status='delivered')

        response = self.client.get('/api/v1/reports/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary']['total_orders'], 2)
        self.assertEqual(response.data['summary']['total_revenue'], 35.5)
        self.assertEqual(
            sorted(c['name'] for c in response.data['categories']),
            sorted(['Roupas', UNCATEGORIZED]),
        )
        self.assertEqual([p['name'] for p in response.data['low_stock']], ['Camisa'])
