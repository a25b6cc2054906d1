"""
Dashboard and report aggregates.

These work on already-loaded collections (model instances or serialized
dicts), matching how the catalog view filter treats products. Money values
are returned as Decimal.
"""
from decimal import Decimal, InvalidOperation

from django.conf import settings

UNCATEGORIZED = 'Uncategorized'


def _field(obj, name, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _decimal(value):
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal('0')


def _stock(product):
    return int(_field(product, 'stock', 0) or 0)


def stock_value(product):
    return _decimal(_field(product, 'price', 0)) * _stock(product)


def low_stock_threshold():
    return settings.STOREFRONT.get('LOW_STOCK_THRESHOLD', 10)


def dashboard_stats(products, category_count=None):
    """Headline numbers for the dashboard cards"""
    products = list(products)
    threshold = low_stock_threshold()
    if category_count is None:
        category_count = len({_field(p, 'category') for p in products if _field(p, 'category')})
    return {
        'total_products': len(products),
        'low_stock_count': sum(1 for p in products if _stock(p) < threshold),
        'total_value': sum((stock_value(p) for p in products), Decimal('0')),
        'category_count': category_count,
    }


def category_breakdown(products):
    """
    Product count and stock value per category label, in first-seen order.
    Products without a category are grouped under ``Uncategorized``.
    """
    rows = {}
    for product in products:
        name = _field(product, 'category') or UNCATEGORIZED
        row = rows.setdefault(name, {'name': name, 'count': 0, 'value': Decimal('0')})
        row['count'] += 1
        row['value'] += stock_value(product)
    return list(rows.values())


def low_stock_products(products, limit=5):
    """Products under the low-stock threshold, lowest stock first"""
    threshold = low_stock_threshold()
    low = [p for p in products if _stock(p) < threshold]
    low.sort(key=_stock)
    return [{'id': _field(p, 'id'), 'name': _field(p, 'name'), 'stock': _stock(p)} for p in low[:limit]]


def order_totals(orders):
    orders = list(orders)
    return {
        'total_orders': len(orders),
        'total_revenue': sum((_decimal(_field(o, 'total', 0)) for o in orders), Decimal('0')),
    }
