"""
Caching system for AroundUs API calls
Provides fixed-TTL caching for geocoding, autocomplete, places and weather lookups
"""

import time
import hashlib
import os
import json
from typing import Any, Callable, Optional, Dict
from functools import wraps

import redis

from logging_config import get_logger

logger = get_logger(__name__)

_redis_client = None
_redis_checked = False


def _get_redis_client():
    """
    Get Redis client with lightweight reconnection check.
    Redis is only used when REDIS_URL is configured; otherwise the
    in-memory cache is the only store.

    Returns:
        Redis client if available, None otherwise
    """
    global _redis_client, _redis_checked

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    if _redis_client is None:
        if _redis_checked:
            return None
        _redis_checked = True
        try:
            _redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=1,
                socket_timeout=1
            )
            _redis_client.ping()
            logger.info("Redis connected for distributed caching")
        except redis.RedisError as e:
            logger.warning(f"Redis not available, using in-memory cache: {e}")
            _redis_client = None
        return _redis_client

    try:
        _redis_client.ping()
        return _redis_client
    except redis.RedisError as e:
        logger.warning(f"Redis connection lost, using in-memory cache: {e}")
        _redis_client = None
        return None


# Simple in-memory cache (always populated, Redis is optional)
_cache: Dict[str, Any] = {}
_cache_ttl: Dict[str, float] = {}

# Cache TTL settings (in seconds)
CACHE_TTL = {
    'geocoding': 24 * 3600,        # reverse geocoding results are stable
    'autocomplete': 10 * 60,       # location suggestions
    'places': 24 * 3600,           # places API photos/reviews/details
    'weather': 10 * 60,            # current conditions and forecasts
}


def _generate_cache_key(prefix: str, *args, **kwargs) -> str:
    """Generate a cache key from a prefix and arguments."""
    args_str = str(args) + str(sorted(kwargs.items()))
    key_hash = hashlib.md5(args_str.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def cached(ttl_seconds: int = 3600, key_prefix: Optional[str] = None,
           key_func: Optional[Callable[..., tuple]] = None):
    """
    Decorator to cache function results with Redis (if available) and in-memory cache.

    Args:
        ttl_seconds: Time to live for cached results in seconds
        key_prefix: Prefix for cache keys (defaults to the function name);
                    clear_cache(cache_type) clears by this prefix
        key_func: Optional callable mapping the call arguments to the tuple
                  that identifies the cache entry (e.g. rounded coordinates)
    """
    def decorator(func):
        prefix = key_prefix or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs):
            if key_func is not None:
                cache_key = _generate_cache_key(prefix, *key_func(*args, **kwargs))
            else:
                cache_key = _generate_cache_key(prefix, *args, **kwargs)
            current_time = time.time()

            cache_entry = None
            cache_time = 0

            redis_client = _get_redis_client()
            if redis_client:
                try:
                    cached_data = redis_client.get(cache_key)
                    if cached_data:
                        data = json.loads(cached_data)
                        cache_entry = data['value']
                        cache_time = data['timestamp']
                except (redis.RedisError, ValueError, KeyError) as e:
                    logger.warning(f"Redis read error, falling back to in-memory: {e}")

            if cache_entry is None and cache_key in _cache:
                cache_entry = _cache[cache_key]
                cache_time = _cache_ttl.get(cache_key, 0)

            if cache_entry is not None and (current_time - cache_time) < ttl_seconds:
                logger.debug(f"Cache hit for {func.__name__}")
                return cache_entry

            logger.debug(f"Cache miss for {func.__name__} - executing")
            result = func(*args, **kwargs)

            skip_cache = False
            if isinstance(result, dict):
                skip_cache = bool(result.pop('_cache_skip', False))

            # Upstream failed: serve the expired entry rather than nothing
            if result is None and cache_entry is not None:
                age_hours = (current_time - cache_time) / 3600
                logger.warning(f"API failed, using stale cache (age: {age_hours:.1f} hours) for {func.__name__}")
                if isinstance(cache_entry, dict):
                    cache_entry = cache_entry.copy()
                    cache_entry['_stale_cache'] = True
                return cache_entry

            if result is not None and not skip_cache:
                redis_client = _get_redis_client()
                if redis_client:
                    try:
                        redis_client.setex(
                            cache_key,
                            ttl_seconds,
                            json.dumps({'value': result, 'timestamp': current_time})
                        )
                    except (redis.RedisError, TypeError) as e:
                        logger.warning(f"Redis write error: {e}")

                _cache[cache_key] = result
                _cache_ttl[cache_key] = current_time
            else:
                logger.debug("Result not cacheable - not caching (allows retry)")

            return result

        return wrapper
    return decorator


def clear_cache(cache_type: Optional[str] = None) -> int:
    """
    Clear cache entries from both Redis (if available) and in-memory cache.

    Args:
        cache_type: If provided, only clear entries whose key prefix matches

    Returns:
        Number of in-memory entries removed
    """
    redis_client = _get_redis_client()
    if redis_client:
        try:
            pattern = "*" if cache_type is None else f"{cache_type}:*"
            keys = redis_client.keys(pattern)
            if keys:
                redis_client.delete(*keys)
        except redis.RedisError as e:
            logger.warning(f"Error clearing Redis cache: {e}")

    if cache_type is None:
        removed = len(_cache)
        _cache.clear()
        _cache_ttl.clear()
        logger.info("Cleared all cache")
        return removed

    keys_to_remove = [key for key in _cache if key.startswith(f"{cache_type}:")]
    for key in keys_to_remove:
        _cache.pop(key, None)
        _cache_ttl.pop(key, None)
    logger.info(f"Cleared {len(keys_to_remove)} {cache_type} cache entries")
    return len(keys_to_remove)


def _ttl_for_key(key: str) -> int:
    prefix = key.split(":", 1)[0]
    return CACHE_TTL.get(prefix, max(CACHE_TTL.values()))


def cleanup_expired_cache() -> int:
    """Remove expired in-memory entries. Returns the number removed."""
    current_time = time.time()
    expired_keys = [
        key for key, cache_time in _cache_ttl.items()
        if current_time - cache_time > _ttl_for_key(key)
    ]

    for key in expired_keys:
        _cache.pop(key, None)
        _cache_ttl.pop(key, None)

    if expired_keys:
        logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")
    return len(expired_keys)


def get_cache_stats() -> Dict[str, Any]:
    """Get cache statistics from both Redis (if available) and in-memory cache."""
    current_time = time.time()

    entries_by_type: Dict[str, int] = {}
    expired_entries = 0
    for key, cache_time in _cache_ttl.items():
        prefix = key.split(":", 1)[0]
        entries_by_type[prefix] = entries_by_type.get(prefix, 0) + 1
        if current_time - cache_time > _ttl_for_key(key):
            expired_entries += 1

    redis_client = _get_redis_client()
    stats = {
        "total_entries": len(_cache),
        "expired_entries": expired_entries,
        "active_entries": len(_cache) - expired_entries,
        "entries_by_type": entries_by_type,
        "cache_size_mb": sum(len(str(v)) for v in _cache.values()) / (1024 * 1024),
        "redis_available": redis_client is not None
    }

    if redis_client:
        try:
            stats["redis_keys"] = redis_client.dbsize()
            info = redis_client.info("memory")
            stats["redis_memory_mb"] = info.get("used_memory", 0) / (1024 * 1024)
        except redis.RedisError as e:
            stats["redis_error"] = str(e)

    return stats
