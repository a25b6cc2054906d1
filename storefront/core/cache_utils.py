"""
Caching utilities for list reads and dashboard aggregates.

Keys are grouped by prefix ("products_list", "orders_list", ...). Each prefix
carries a version number that is part of every key, so invalidating a prefix
is a version bump and works on any cache backend. When Redis is the backend
the stale keys are also removed with SCAN.
"""
from django.core.cache import cache
from django.conf import settings
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
PRODUCTS_LIST_CACHE_TTL = 120  # 2 minutes
CATEGORIES_LIST_CACHE_TTL = 300  # 5 minutes
ORDERS_LIST_CACHE_TTL = 120  # 2 minutes
DASHBOARD_CACHE_TTL = 300  # 5 minutes

PRODUCTS_PREFIX = "products_list"
CATEGORIES_PREFIX = "categories_list"
ORDERS_PREFIX = "orders_list"
DASHBOARD_PREFIX = "dashboard"


def _version_key(prefix):
    return f"{prefix}:version"


def get_prefix_version(prefix):
    """Current version of a key prefix (starts at 1)"""
    version = cache.get(_version_key(prefix))
    if version is None:
        cache.add(_version_key(prefix), 1, None)
        version = cache.get(_version_key(prefix), 1)
    return version


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique, versioned cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:v{get_prefix_version(prefix)}:{key_hash}"


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive reads

    Usage:
        @cached_query(cache_ttl=120, key_prefix=PRODUCTS_PREFIX)
        def load_products():
            return [...]
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, func.__name__, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def _uses_redis():
    backend = settings.CACHES.get('default', {}).get('BACKEND', '')
    return backend.startswith('django_redis')


def _delete_redis_keys(pattern):
    """Remove keys matching a pattern with Redis SCAN"""
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}:v*", count=100)
            keys.extend(k for k in partial_keys if not k.endswith(b":version"))
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Deleted {len(keys)} cache keys matching pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not delete cache keys for pattern {pattern}: {str(e)}")


def invalidate_cache_pattern(prefix):
    """Invalidate every cache key built with ``prefix``"""
    try:
        cache.incr(_version_key(prefix))
    except ValueError:
        # Version key was evicted or never set
        cache.set(_version_key(prefix), get_prefix_version(prefix) + 1, None)
    if _uses_redis():
        _delete_redis_keys(prefix)
    logger.info(f"Invalidated cache prefix: {prefix}")


def invalidate_catalog_reads():
    """Invalidate products, categories and the dashboard built from them"""
    invalidate_cache_pattern(PRODUCTS_PREFIX)
    invalidate_cache_pattern(CATEGORIES_PREFIX)
    invalidate_cache_pattern(DASHBOARD_PREFIX)


def invalidate_order_reads():
    """Invalidate orders and the reports built from them"""
    invalidate_cache_pattern(ORDERS_PREFIX)
    invalidate_cache_pattern(DASHBOARD_PREFIX)
