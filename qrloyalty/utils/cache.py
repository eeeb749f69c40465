"""
Cache construction for the loyalty service.

A single Flask-Caching instance is built in ``create_app`` and handed to
the services that need it; nothing in this module holds a cache at import
time. Redis is used when ``REDIS_URL`` is reachable, otherwise an
in-process SimpleCache.

Usage:
    cache = get_cache(current_app)
    service = LoyaltyProgramService(merchant_id, cache=cache)

Environment Variables:
    REDIS_URL: Redis connection URL (e.g., redis://localhost:6379/0)
"""
import os
import logging
from flask import Flask
from flask_caching import Cache

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'qrloyalty.cache'
KEY_PREFIX = 'qrloyalty:'


def build_cache(app: Flask) -> Cache:
    """
    Create and initialize the app's cache, preferring Redis.

    Honors an explicit CACHE_TYPE already set in config (tests use NullCache).
    """
    config = {
        'CACHE_TYPE': app.config.get('CACHE_TYPE', 'SimpleCache'),
        'CACHE_DEFAULT_TIMEOUT': app.config.get('THRESHOLD_CACHE_TIMEOUT', 300),
        'CACHE_KEY_PREFIX': KEY_PREFIX,
    }

    redis_url = os.getenv('REDIS_URL')
    if redis_url and 'CACHE_TYPE' not in app.config:
        try:
            import redis
            r = redis.from_url(redis_url, socket_connect_timeout=2)
            r.ping()
            config['CACHE_TYPE'] = 'RedisCache'
            config['CACHE_REDIS_URL'] = redis_url
            logger.info('[Cache] Redis cache connected: %s', redis_url.split('@')[-1])
        except Exception as e:
            logger.warning('[Cache] Redis unavailable (%s), using simple cache', str(e))

    cache = Cache(config=config)
    cache.init_app(app)
    app.extensions[EXTENSION_KEY] = cache
    logger.info('[Cache] Using %s', config['CACHE_TYPE'])
    return cache


def get_cache(app: Flask):
    """Return the cache built for this app, or None if caching is not set up."""
    return app.extensions.get(EXTENSION_KEY)


def cache_key(*args, **kwargs) -> str:
    """
    Generate a cache key from arguments.

        key = cache_key('thresholds', merchant_id=123)
    """
    parts = list(args)
    for k, v in sorted(kwargs.items()):
        parts.append(f'{k}={v}')
    return ':'.join(str(p) for p in parts)
