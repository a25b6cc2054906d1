import logging

from django.conf import settings
from django.db import DatabaseError
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from storefront.catalog.models import Category
from storefront.catalog.serializers import ProductSerializer
from storefront.catalog.utils import get_catalog_snapshot
from storefront.core.cache_utils import cached_query, DASHBOARD_PREFIX, DASHBOARD_CACHE_TTL
from storefront.core.exceptions import RemoteReadFailure, error_response
from storefront.orders.models import Order
from .summary import category_breakdown, dashboard_stats, low_stock_products, order_totals

logger = logging.getLogger('storefront.reports')


def _load_orders():
    try:
        return list(Order.objects.only('id', 'total'))
    except DatabaseError as e:
        logger.error(f"Failed to load orders for reports: {str(e)}")
        raise RemoteReadFailure('Error loading orders') from e


def _load_category_count():
    try:
        return Category.objects.count()
    except DatabaseError as e:
        logger.error(f"Failed to count categories: {str(e)}")
        raise RemoteReadFailure('Error loading categories') from e


@cached_query(cache_ttl=DASHBOARD_CACHE_TTL, key_prefix=DASHBOARD_PREFIX)
def get_dashboard_payload():
    products = get_catalog_snapshot()
    stats = dashboard_stats(products, category_count=_load_category_count())
    recent_limit = settings.STOREFRONT.get('DASHBOARD_RECENT_PRODUCTS', 5)
    return {
        'total_products': stats['total_products'],
        'low_stock_count': stats['low_stock_count'],
        'total_value': float(stats['total_value']),
        'category_count': stats['category_count'],
        'recent_products': list(ProductSerializer(products[:recent_limit], many=True).data),
    }


@cached_query(cache_ttl=DASHBOARD_CACHE_TTL, key_prefix=DASHBOARD_PREFIX)
def get_summary_payload():
    products = get_catalog_snapshot()
    totals = order_totals(_load_orders())
    stats = dashboard_stats(products)
    return {
        'summary': {
            'total_products': stats['total_products'],
            'total_value': float(stats['total_value']),
            'total_orders': totals['total_orders'],
            'total_revenue': float(totals['total_revenue']),
        },
        'categories': [
            {'name': row['name'], 'count': row['count'], 'value': float(row['value'])}
            for row in category_breakdown(products)
        ],
        'low_stock': low_stock_products(products),
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard(request):
    """Dashboard cards and the most recently added products"""
    logger.info(f"User {request.user.email} requested dashboard")
    try:
        return Response(get_dashboard_payload())
    except RemoteReadFailure as e:
        return error_response(e, recent_products=[])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def summary(request):
    """Per-category breakdown, low-stock products and order revenue"""
    logger.info(f"User {request.user.email} requested report summary")
    try:
        return Response(get_summary_payload())
    except RemoteReadFailure as e:
        return error_response(e, categories=[], low_stock=[])
