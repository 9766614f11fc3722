"""Redis caching for read-mostly reference data.

Only the global role / permission catalog is cached (short TTL). Principal
loading and anything tenant- or patient-scoped is never cached, so grant
revocation takes effect on the next request.

If Redis is unreachable the wrapped function simply runs uncached.
"""

import functools
import hashlib
import json
import logging
from datetime import date, datetime
from typing import Callable, Optional

import redis.asyncio as redis

from orthoplan.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create the Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_connect_timeout=1,
        )
    return _redis_client


async def close_redis():
    """Close the Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(**kwargs) -> str:
    """Deterministic hash of simple keyword arguments."""
    if not kwargs:
        return "default"
    key_data = json.dumps(kwargs, sort_keys=True)
    return hashlib.md5(key_data.encode()).hexdigest()


def _serialize(result):
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json")
    if isinstance(result, list):
        return [
            item.model_dump(mode="json") if hasattr(item, "model_dump") else item
            for item in result
        ]
    return result


def cached(ttl: int | None = None, prefix: str = "cache"):
    """Decorator to cache an async function's result in Redis.

    Positional args (sessions, contexts) are ignored for the key; only
    simple keyword arguments participate.

    Cache keys: {prefix}:{function_name}:{kwargs_hash}
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if not settings.cache_enabled:
                return await func(*args, **kwargs)

            cache_kwargs = {}
            for k, v in kwargs.items():
                if isinstance(v, (int, str, bool, float, type(None))):
                    cache_kwargs[k] = v
                elif isinstance(v, (date, datetime)):
                    cache_kwargs[k] = v.isoformat()
            key = f"{prefix}:{func.__name__}:{cache_key(**cache_kwargs)}"

            try:
                redis_client = await get_redis()
                cached_value = await redis_client.get(key)
                if cached_value:
                    logger.debug(f"Cache HIT: {key}")
                    return json.loads(cached_value)
                logger.debug(f"Cache MISS: {key}")
            except redis.RedisError as e:
                logger.warning(f"Redis error (falling back to uncached): {e}")
                return await func(*args, **kwargs)

            result = await func(*args, **kwargs)

            try:
                await redis_client.setex(
                    key,
                    ttl or settings.catalog_cache_ttl,
                    json.dumps(_serialize(result)),
                )
            except redis.RedisError as e:
                logger.warning(f"Failed to store cache entry {key}: {e}")

            return result

        return wrapper

    return decorator


async def invalidate_cache(pattern: str):
    """Delete cache keys matching a pattern, e.g. "catalog:*"."""
    if not settings.cache_enabled:
        return
    try:
        redis_client = await get_redis()
        keys = [key async for key in redis_client.scan_iter(match=pattern)]
        if keys:
            await redis_client.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching {pattern}")
    except redis.RedisError as e:
        logger.warning(f"Failed to invalidate cache: {e}")
