"""
Catalog view filter: search, category and price-sort over an in-memory
product collection.

Collections here are small (one store's catalog), so the full list is
filtered and sorted in Python on every request instead of building querysets.
Products may be model instances or plain dicts (e.g. cached serializer data).
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings

from storefront.core.exceptions import ValidationFailure

SORT_NONE = 'none'
SORT_ASCENDING = 'ascending'
SORT_DESCENDING = 'descending'

PRICE_SORT_ALIASES = {
    '': SORT_NONE,
    'none': SORT_NONE,
    'default': SORT_NONE,
    'ascending': SORT_ASCENDING,
    'asc': SORT_ASCENDING,
    'descending': SORT_DESCENDING,
    'desc': SORT_DESCENDING,
}

EMPTY_NO_PRODUCTS = 'no_products'
EMPTY_NO_MATCHES = 'no_matches'


def _field(product, name, default=None):
    if isinstance(product, dict):
        return product.get(name, default)
    return getattr(product, name, default)


def _price(product):
    value = _field(product, 'price', 0)
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal('0')


def normalize_price_sort(price_sort):
    """Map a user-supplied sort direction onto none/ascending/descending"""
    key = (price_sort or '').strip().lower()
    if key not in PRICE_SORT_ALIASES:
        raise ValidationFailure('price_sort', f"Unknown price sort '{price_sort}'. Use none, ascending or descending.")
    return PRICE_SORT_ALIASES[key]


def matches(product, search_text='', category_name=''):
    """Name contains search_text (case-insensitive) and category matches exactly"""
    name = _field(product, 'name', '') or ''
    if (search_text or '').lower() not in name.lower():
        return False
    if category_name and (_field(product, 'category', '') or '') != category_name:
        return False
    return True


def filter_products(products, search_text='', category_name='', price_sort=SORT_NONE):
    """
    Derive the displayable product list.

    The result is a new list holding the products that match, in input order
    unless price_sort asks otherwise. Python's sort is stable, so products with
    equal prices keep their relative order.
    """
    direction = normalize_price_sort(price_sort)
    result = [p for p in products if matches(p, search_text, category_name)]
    if direction == SORT_ASCENDING:
        result.sort(key=_price)
    elif direction == SORT_DESCENDING:
        result.sort(key=_price, reverse=True)
    return result


def catalog_empty_state(all_products, filtered_products):
    """Tell an empty catalog apart from a filter that matched nothing"""
    if not all_products:
        return EMPTY_NO_PRODUCTS
    if not filtered_products:
        return EMPTY_NO_MATCHES
    return None


def stock_badge(stock):
    """Badge variant for a stock count: warning below the low-stock threshold"""
    threshold = settings.STOREFRONT['LOW_STOCK_THRESHOLD']
    return 'warning' if stock < threshold else 'success'


@dataclass(frozen=True)
class FilterState:
    search_text: str = ''
    category_name: str = ''
    price_sort: str = SORT_NONE

    @classmethod
    def from_query_params(cls, params):
        return cls(
            search_text=params.get('search', '') or '',
            category_name=params.get('category', '') or '',
            price_sort=normalize_price_sort(params.get('price_sort', '')),
        )

    def apply(self, products):
        return filter_products(products, self.search_text, self.category_name, self.price_sort)
