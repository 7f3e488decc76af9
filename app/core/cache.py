import json
import asyncio
import fnmatch
import itertools
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from datetime import datetime
import time
import logging

logger = logging.getLogger(__name__)

SCAN_COUNT = 100

class CacheBackend(ABC):
    """Raw key-value operations. Values are strings; failures raise."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        pass

    @abstractmethod
    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: int = SCAN_COUNT) -> Tuple[int, List[str]]:
        pass

    @abstractmethod
    async def hget(self, key: str, field: str) -> Optional[str]:
        pass

    @abstractmethod
    async def hset(self, key: str, field: str, value: str) -> int:
        pass

    @abstractmethod
    async def hgetall(self, key: str) -> Dict[str, str]:
        pass

    @abstractmethod
    async def hdel(self, key: str, *fields: str) -> int:
        pass

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool:
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> bool:
        pass

    async def close(self) -> None:
        pass

class MemoryCacheBackend(CacheBackend):
    def __init__(self):
        self._cache: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()
        # Scan cursors are insertion sequence numbers, so deletes never shift them
        self._seq = itertools.count(1)

    def _next_seq(self, key: str) -> int:
        item = self._live(key)
        return item["seq"] if item else next(self._seq)

    def _live(self, key: str) -> Optional[Dict]:
        item = self._cache.get(key)
        if item is None:
            return None
        if item["expiry"] and time.time() >= item["expiry"]:
            del self._cache[key]
            return None
        return item

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            item = self._live(key)
            if item and item["type"] == "string":
                return item["value"]
            return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        async with self._lock:
            self._cache[key] = {
                "type": "string",
                "value": value,
                "expiry": time.time() + ttl if ttl else 0,
                "seq": self._next_seq(key),
            }
            return True

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            count = 0
            for key in keys:
                if self._live(key) is not None:
                    del self._cache[key]
                    count += 1
            return count

    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: int = SCAN_COUNT) -> Tuple[int, List[str]]:
        async with self._lock:
            remaining = sorted(
                (item["seq"], key) for key, item in self._cache.items() if item["seq"] > cursor
            )
            page = remaining[:count]
            next_cursor = page[-1][0] if len(remaining) > count else 0
            keys = [
                key for _, key in page
                if self._live(key) is not None and (match is None or fnmatch.fnmatchcase(key, match))
            ]
            return next_cursor, keys

    async def hget(self, key: str, field: str) -> Optional[str]:
        async with self._lock:
            item = self._live(key)
            if item and item["type"] == "hash":
                return item["value"].get(field)
            return None

    async def hset(self, key: str, field: str, value: str) -> int:
        async with self._lock:
            item = self._live(key)
            if item is None or item["type"] != "hash":
                item = {"type": "hash", "value": {}, "expiry": 0, "seq": self._next_seq(key)}
                self._cache[key] = item
            is_new = field not in item["value"]
            item["value"][field] = value
            return 1 if is_new else 0

    async def hgetall(self, key: str) -> Dict[str, str]:
        async with self._lock:
            item = self._live(key)
            if item and item["type"] == "hash":
                return dict(item["value"])
            return {}

    async def hdel(self, key: str, *fields: str) -> int:
        async with self._lock:
            item = self._live(key)
            if item is None or item["type"] != "hash":
                return 0
            removed = sum(1 for field in fields if item["value"].pop(field, None) is not None)
            if not item["value"]:
                del self._cache[key]
            return removed

    async def expire(self, key: str, ttl: int) -> bool:
        async with self._lock:
            item = self._live(key)
            if item is None:
                return False
            item["expiry"] = time.time() + ttl
            return True

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None

    async def clear(self) -> bool:
        async with self._lock:
            self._cache.clear()
            return True

class RedisCacheBackend(CacheBackend):
    def __init__(self, redis_url: str):
        import redis.asyncio as redis
        self.redis = redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        if ttl:
            await self.redis.setex(key, ttl, value)
        else:
            await self.redis.set(key, value)
        return True

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.redis.delete(*keys)

    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: int = SCAN_COUNT) -> Tuple[int, List[str]]:
        next_cursor, keys = await self.redis.scan(cursor=cursor, match=match, count=count)
        return int(next_cursor), list(keys)

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self.redis.hget(key, field)

    async def hset(self, key: str, field: str, value: str) -> int:
        return await self.redis.hset(key, field, value)

    async def hgetall(self, key: str) -> Dict[str, str]:
        return await self.redis.hgetall(key)

    async def hdel(self, key: str, *fields: str) -> int:
        return await self.redis.hdel(key, *fields)

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self.redis.expire(key, ttl))

    async def exists(self, key: str) -> bool:
        return await self.redis.exists(key) > 0

    async def clear(self) -> bool:
        await self.redis.flushdb()
        return True

    async def close(self) -> None:
        await self.redis.aclose()

def create_cache_backend(redis_url: Optional[str]) -> CacheBackend:
    if redis_url:
        try:
            logger.info("Initializing Redis cache backend")
            return RedisCacheBackend(redis_url)
        except ImportError:
            logger.warning("Redis not available, falling back to memory cache")
        except Exception as e:
            logger.error(f"Redis connection failed: {e}, falling back to memory cache")

    logger.info("Using in-memory cache backend")
    return MemoryCacheBackend()

class CacheManager:
    """JSON cache facade over a backend.

    Every backend failure is logged and turned into a miss or a no-op, so
    callers only ever see None, {}, False or 0 from a broken cache.
    """

    def __init__(self, backend: CacheBackend, enabled: bool = True, default_ttl: int = 300):
        self.backend = backend
        self.enabled = enabled
        self.default_ttl = default_ttl

    @staticmethod
    def _serialize(value: Any) -> str:
        return json.dumps(value, default=str)

    @staticmethod
    def _deserialize(value: str) -> Any:
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return value

    async def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            value = await self.backend.get(key)
        except Exception as e:
            logger.error(f"Cache GET error for key {key}: {e}")
            return None
        if value is None:
            logger.debug(f"Cache MISS for key: {key}")
            return None
        logger.debug(f"Cache HIT for key: {key}")
        return self._deserialize(value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        try:
            return await self.backend.set(key, self._serialize(value), ttl or self.default_ttl)
        except Exception as e:
            logger.error(f"Cache SET error for key {key}: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        if not self.enabled or not keys:
            return 0
        try:
            return await self.backend.delete(*keys)
        except Exception as e:
            logger.error(f"Cache DELETE error for keys {keys}: {e}")
            return 0

    async def scan_pages(self, pattern: str, count: int = SCAN_COUNT) -> AsyncIterator[List[str]]:
        """Yield matched keys page by page until the scan cursor returns to 0.

        Not atomic: keys written by other requests while the scan runs may be
        missed.
        """
        cursor = 0
        while True:
            cursor, keys = await self.backend.scan(cursor=cursor, match=pattern, count=count)
            if keys:
                yield keys
            if cursor == 0:
                break

    async def delete_pattern(self, pattern: str) -> int:
        if not self.enabled:
            return 0
        deleted = 0
        try:
            async for keys in self.scan_pages(pattern):
                deleted += await self.backend.delete(*keys)
        except Exception as e:
            logger.error(f"Cache pattern delete error for {pattern}: {e}")
        return deleted

    async def hget(self, key: str, field: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            value = await self.backend.hget(key, field)
        except Exception as e:
            logger.error(f"Cache HGET error for key {key} field {field}: {e}")
            return None
        return self._deserialize(value) if value is not None else None

    async def hset(self, key: str, field: str, value: Any) -> bool:
        if not self.enabled:
            return False
        try:
            await self.backend.hset(key, field, self._serialize(value))
            return True
        except Exception as e:
            logger.error(f"Cache HSET error for key {key} field {field}: {e}")
            return False

    async def hgetall(self, key: str) -> Dict[str, Any]:
        if not self.enabled:
            return {}
        try:
            values = await self.backend.hgetall(key)
        except Exception as e:
            logger.error(f"Cache HGETALL error for key {key}: {e}")
            return {}
        return {field: self._deserialize(value) for field, value in values.items()}

    async def hdel(self, key: str, *fields: str) -> int:
        if not self.enabled:
            return 0
        try:
            return await self.backend.hdel(key, *fields)
        except Exception as e:
            logger.error(f"Cache HDEL error for key {key} fields {fields}: {e}")
            return 0

    async def expire(self, key: str, ttl: int) -> bool:
        if not self.enabled:
            return False
        try:
            return await self.backend.expire(key, ttl)
        except Exception as e:
            logger.error(f"Cache EXPIRE error for key {key}: {e}")
            return False

    async def exists(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            return await self.backend.exists(key)
        except Exception as e:
            logger.error(f"Cache EXISTS error for key {key}: {e}")
            return False

    async def clear(self) -> bool:
        try:
            return await self.backend.clear()
        except Exception as e:
            logger.error(f"Cache CLEAR error: {e}")
            return False

    async def health_check(self) -> bool:
        if not self.enabled:
            return False
        test_key = "health_check_test"
        test_value = {"timestamp": datetime.utcnow().isoformat()}

        await self.set(test_key, test_value, ttl=10)
        retrieved = await self.get(test_key)
        await self.delete(test_key)

        return retrieved == test_value

    async def close(self) -> None:
        try:
            await self.backend.close()
        except Exception as e:
            logger.error(f"Cache close error: {e}")

async def init_cache(settings) -> CacheManager:
    backend = create_cache_backend(settings.REDIS_URL)
    manager = CacheManager(backend, enabled=settings.CACHE_ENABLED, default_ttl=settings.CACHE_TTL)
    logger.info(f"Cache initialized ({type(backend).__name__}, enabled={settings.CACHE_ENABLED})")
    return manager

async def close_cache(manager: CacheManager) -> None:
    await manager.close()
    logger.info("Cache closed")
