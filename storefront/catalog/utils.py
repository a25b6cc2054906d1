"""Catalog reads shared by the catalog, orders and reports views"""
import logging
from collections import Counter

from django.db import DatabaseError

from storefront.core.cache_utils import (
    cached_query, PRODUCTS_PREFIX, CATEGORIES_PREFIX,
    PRODUCTS_LIST_CACHE_TTL, CATEGORIES_LIST_CACHE_TTL,
)
from storefront.core.exceptions import RemoteReadFailure
from .models import Category, Product
from .serializers import CategorySerializer, ProductSerializer

logger = logging.getLogger(__name__)


def get_catalog_snapshot():
    """All products, newest first, read fresh from the database"""
    try:
        return list(Product.objects.all())
    except DatabaseError as e:
        logger.error(f"Failed to load catalog: {str(e)}")
        raise RemoteReadFailure('Error loading products') from e


def product_counts_by_category(products):
    """Map category name -> number of products carrying it"""
    counts = Counter()
    for product in products:
        name = product['category'] if isinstance(product, dict) else product.category
        if name:
            counts[name] += 1
    return dict(counts)


@cached_query(cache_ttl=PRODUCTS_LIST_CACHE_TTL, key_prefix=PRODUCTS_PREFIX)
def get_product_rows():
    """Serialized product list, cached until a catalog write"""
    return list(ProductSerializer(get_catalog_snapshot(), many=True).data)


@cached_query(cache_ttl=CATEGORIES_LIST_CACHE_TTL, key_prefix=CATEGORIES_PREFIX)
def get_category_rows():
    """Serialized categories with product counts, cached until a catalog write"""
    try:
        categories = list(Category.objects.all())
    except DatabaseError as e:
        logger.error(f"Failed to load categories: {str(e)}")
        raise RemoteReadFailure('Error loading categories') from e
    counts = product_counts_by_category(get_catalog_snapshot())
    return list(CategorySerializer(categories, many=True, context={'product_counts': counts}).data)
