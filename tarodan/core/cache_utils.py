"""
Caching utilities for listing browse results and membership limits
Uses Redis in production (django-redis), local memory otherwise
"""
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
PRODUCTS_LIST_CACHE_TTL = 120  # 2 minutes
MEMBERSHIP_LIMITS_CACHE_TTL = 300  # 5 minutes
GENERATION_TTL = None  # generation counters never expire


def _generation_key(prefix):
    return f"{prefix}:generation"


def get_generation(prefix):
    """Current generation of a key family; bumping it orphans every older key"""
    generation = cache.get(_generation_key(prefix))
    if generation is None:
        generation = 1
        cache.set(_generation_key(prefix), generation, GENERATION_TTL)
    return generation


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{get_generation(prefix)}:{key_hash}"


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys of a key family.

    The generation bump works on every cache backend. With Redis the stale
    keys are also deleted right away using SCAN instead of waiting for TTL.
    """
    try:
        cache.incr(_generation_key(pattern))
    except ValueError:
        cache.set(_generation_key(pattern), 2, GENERATION_TTL)

    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}:*", count=100)
            keys.extend(k for k in partial_keys if not k.decode().endswith(':generation'))
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except NotImplementedError:
        # Not a redis backend: the generation bump is enough
        pass
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def get_cached_products_list(filters_dict):
    """
    Get cached products list with filters
    Returns tuple: (cached_data, cache_key)
    """
    cache_key = make_cache_key("products_list", **filters_dict)
    cached_data = cache.get(cache_key)
    return cached_data, cache_key


def cache_products_list(cache_key, data, ttl=PRODUCTS_LIST_CACHE_TTL):
    """Cache products list data"""
    cache.set(cache_key, data, ttl)
    logger.debug(f"Cached products list: {cache_key}")


def membership_limits_key(user_id):
    return f"membership_limits:{user_id}"


def get_cached_membership_limits(user_id):
    return cache.get(membership_limits_key(user_id))


def cache_membership_limits(user_id, data, ttl=MEMBERSHIP_LIMITS_CACHE_TTL):
    cache.set(membership_limits_key(user_id), data, ttl)


def invalidate_membership_limits(user_id):
    """Drop a user's cached limits after listing count or tier changes"""
    cache.delete(membership_limits_key(user_id))


def invalidate_products_cache():
    """Invalidate all listing browse cache"""
    invalidate_cache_pattern("products_list")
    logger.info("Invalidated products cache")
