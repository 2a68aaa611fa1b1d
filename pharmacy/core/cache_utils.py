"""
Caching helpers for dashboard and report payloads
Uses Redis when it is configured as the default cache
"""
from django.conf import settings
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger('pharmacy.core')

# Cache TTLs (in seconds)
DASHBOARD_CACHE_TTL = 300  # 5 minutes
REPORTS_CACHE_TTL = 600  # 10 minutes

REPORT_CACHE_PREFIXES = ['dashboard', 'report_sales', 'report_inventory', 'report_purchases', 'report_finance']


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_cached_report(prefix, *args, **kwargs):
    """Returns tuple: (cached_data, cache_key)"""
    cache_key = make_cache_key(prefix, *args, **kwargs)
    return cache.get(cache_key), cache_key


def cache_report(cache_key, data, ttl=REPORTS_CACHE_TTL):
    cache.set(cache_key, data, ttl)
    logger.debug(f"Cached report data: {cache_key}")


def uses_redis_cache():
    return settings.CACHES['default']['BACKEND'].startswith('django_redis')


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Note: This requires Redis with SCAN command support
    """
    if not uses_redis_cache():
        return 0
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
        return len(keys)
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")
        return 0


def invalidate_report_caches():
    """Drop every cached dashboard and report payload"""
    for prefix in REPORT_CACHE_PREFIXES:
        invalidate_cache_pattern(f"{prefix}:")
