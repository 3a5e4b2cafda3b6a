"""
Redis-backed cache with an in-process fallback; memoizes audio transcripts
"""
import json
from typing import Any, Callable, Optional

import redis
import structlog

from studylab.config import settings

logger = structlog.get_logger()

KEY_PREFIX = "studylab:"


class CacheService:
    def __init__(self, redis_url: Optional[str] = None, prefix: str = KEY_PREFIX):
        self.prefix = prefix
        self.redis_client = None
        self._memory_cache = {}
        if not redis_url:
            logger.info("cache_backend_selected", backend="memory")
            return
        try:
            client = redis.from_url(redis_url, decode_responses=True)
            client.ping()
            self.redis_client = client
            logger.info("cache_backend_selected", backend="redis")
        except redis.RedisError as e:
            logger.warning("redis_unavailable", error=str(e), backend="memory")

    @property
    def backend(self) -> str:
        return "redis" if self.redis_client is not None else "memory"

    def _key(self, key: str) -> str:
        return self.prefix + key

    def get(self, key: str) -> Optional[Any]:
        if self.redis_client is None:
            return self._memory_cache.get(self._key(key))
        try:
            value = self.redis_client.get(self._key(key))
        except redis.RedisError as e:
            logger.error("cache_get_failed", key=key, error=str(e))
            return None
        return json.loads(value) if value is not None else None

    def set(self, key: str, value: Any, expire: int = 3600) -> bool:
        if self.redis_client is None:
            self._memory_cache[self._key(key)] = value
            return True
        try:
            return bool(self.redis_client.setex(self._key(key), expire, json.dumps(value)))
        except redis.RedisError as e:
            logger.error("cache_set_failed", key=key, error=str(e))
            return False

    def delete(self, key: str) -> bool:
        if self.redis_client is None:
            return self._memory_cache.pop(self._key(key), None) is not None
        try:
            return bool(self.redis_client.delete(self._key(key)))
        except redis.RedisError as e:
            logger.error("cache_delete_failed", key=key, error=str(e))
            return False

    def remember(self, key: str, compute: Callable[[], Any], expire: int = 3600) -> Any:
        """Return the cached value for `key`, computing and storing it on a miss."""
        cached = self.get(key)
        if cached is not None:
            logger.info("cache_hit", key=key)
            return cached
        value = compute()
        self.set(key, value, expire=expire)
        return value


cache = CacheService(settings.redis_url)
