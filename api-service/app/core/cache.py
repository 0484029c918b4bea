"""
Response Cache
Pluggable TTL key-value stores (in-process or Redis) and the response cache built on them
"""

import fnmatch
import hashlib
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
import structlog
import redis.asyncio as aioredis

from app.core.simple_config import settings, REDIS_CONFIG

logger = structlog.get_logger()


class TTLStore(ABC):
    """Key-value store whose entries expire"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def invalidate_pattern(self, pattern: str) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryTTLStore(TTLStore):
    """Process-local store; contents are lost on restart"""

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10000):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if len(self._entries) >= self._max_entries and key not in self._entries:
            self._purge_expired()
            if len(self._entries) >= self._max_entries:
                # Drop the entry closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
        self._entries[key] = (self._clock() + ttl_seconds, value)
        return True

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def invalidate_pattern(self, pattern: str) -> int:
        keys = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def close(self) -> None:
        self._entries.clear()


class RedisTTLStore(TTLStore):
    """Async Redis store with graceful fallback: an unreachable server behaves as a permanent miss"""

    def __init__(self, url: Optional[str] = None):
        self._url = url or REDIS_CONFIG["url"]
        self._client: Optional[aioredis.Redis] = None
        self._available: bool = True

    async def _get_client(self) -> Optional[aioredis.Redis]:
        """Lazy-initialize Redis connection"""
        if not self._available:
            return None
        if self._client is None:
            try:
                self._client = aioredis.from_url(
                    self._url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=3,
                    retry_on_timeout=True,
                )
                await self._client.ping()
                logger.info("Redis cache connected", url=self._url)
            except Exception as e:
                logger.warning("Redis unavailable, caching disabled", error=str(e))
                self._available = False
                self._client = None
                return None
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        client = await self._get_client()
        if not client:
            return None
        try:
            raw = await client.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.debug("Cache get failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        client = await self._get_client()
        if not client:
            return False
        try:
            serialized = json.dumps(value, default=str)
            await client.set(key, serialized, ex=ttl_seconds)
            return True
        except Exception as e:
            logger.debug("Cache set failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        client = await self._get_client()
        if not client:
            return False
        try:
            await client.delete(key)
            return True
        except Exception as e:
            logger.debug("Cache delete failed", key=key, error=str(e))
            return False

    async def invalidate_pattern(self, pattern: str) -> int:
        client = await self._get_client()
        if not client:
            return 0
        try:
            keys = []
            async for key in client.scan_iter(match=pattern, count=100):
                keys.append(key)
            if keys:
                await client.delete(*keys)
            return len(keys)
        except Exception as e:
            logger.debug("Cache invalidate failed", pattern=pattern, error=str(e))
            return 0

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


def build_ttl_store(backend: Optional[str] = None) -> TTLStore:
    backend = (backend or settings.CACHE_BACKEND).lower()
    if backend == "redis":
        return RedisTTLStore()
    if backend != "memory":
        logger.warning("Unknown cache backend, using in-memory store", backend=backend)
    return InMemoryTTLStore()


class ResponseCache:
    """
    Caches serialized responses under ``<prefix>:<namespace>:<digest>``.

    The digest covers the route, the sorted query parameters and the caller,
    so two callers never share an entry. Mutations invalidate a whole namespace.
    """

    def __init__(self, store: TTLStore, default_ttl: Optional[int] = None, prefix: str = "bizdesk"):
        self.store = store
        self.default_ttl = default_ttl or settings.CACHE_DEFAULT_TTL_SECONDS
        self.prefix = prefix

    def build_key(
        self,
        namespace: str,
        route: str,
        query: Optional[Mapping[str, Any]] = None,
        caller: Optional[str] = None,
    ) -> str:
        material = json.dumps(
            {
                "route": route,
                "query": sorted((str(k), str(v)) for k, v in (query or {}).items()),
                "caller": caller or "anonymous",
            },
            separators=(",", ":"),
        )
        digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
        return f"{self.prefix}:{namespace}:{digest}"

    async def get(self, key: str) -> Optional[Any]:
        value = await self.store.get(key)
        logger.debug("Response cache lookup", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        return await self.store.set(key, value, ttl_seconds or self.default_ttl)

    async def get_or_set(self, key: str, factory: Callable[[], Any], ttl_seconds: Optional[int] = None) -> Any:
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await factory()
        await self.set(key, value, ttl_seconds)
        return value

    async def invalidate(self, namespace: str) -> int:
        removed = await self.store.invalidate_pattern(f"{self.prefix}:{namespace}:*")
        logger.debug("Response cache invalidated", namespace=namespace, removed=removed)
        return removed

    async def close(self) -> None:
        await self.store.close()
