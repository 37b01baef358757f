"""
Batch operations and Redis data-structure helpers for Frache.

Lists, sets and counters are stored as native Redis structures under the
same namespaced keys as plain entries; list and set members are encoded with
the regular value codec.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..config import get_settings
from .cache_manager import Cache
from .keys import meta_key
from .serialization import deserialize, ensure_str, serialize
from .utils import TTLValue, parse_ttl


class AdvancedCache(Cache):
    """Cache with batch, counter, list and set operations."""

    # Batch operations

    async def set_many(self, entries: Mapping[str, Any], **options) -> List[bool]:
        """Set several keys concurrently with shared options; results follow entry order."""
        return list(await asyncio.gather(
            *(self.set(key, value, **options) for key, value in entries.items())
        ))

    async def get_many(self, keys: Iterable[str], **options) -> Dict[str, Any]:
        """Get several keys concurrently; missing keys map to the default."""
        keys = list(keys)
        values = await asyncio.gather(*(self.get(key, **options) for key in keys))
        return dict(zip(keys, values))

    async def delete_many(self, keys: Iterable[str], namespace: Optional[str] = None) -> int:
        """Delete several keys; returns the total store keys removed."""
        total_deleted = 0
        for key in keys:
            total_deleted += await self.delete(key, namespace=namespace)
        return total_deleted

    # Key helpers

    async def exists(self, key: str, namespace: Optional[str] = None) -> bool:
        cache_key = self._cache_key(key, namespace)
        with self._operation('exists', key, namespace):
            return await self.redis_client.exists(cache_key) > 0

    async def ttl(self, key: str, namespace: Optional[str] = None) -> int:
        """Remaining TTL in seconds; -1 without expiry, -2 when the key is missing."""
        cache_key = self._cache_key(key, namespace)
        with self._operation('ttl', key, namespace):
            return int(await self.redis_client.ttl(cache_key))

    async def expire(self, key: str, ttl: TTLValue, namespace: Optional[str] = None) -> bool:
        """Set a new TTL on an existing entry and its metadata record."""
        cache_key = self._cache_key(key, namespace)
        ttl_seconds = parse_ttl(ttl)
        if ttl_seconds is None:
            return await self.persist(key, namespace=namespace)

        with self._operation('expire', key, namespace):
            updated = bool(await self.redis_client.expire(cache_key, ttl_seconds))
            if updated:
                await self.redis_client.expire(meta_key(cache_key), ttl_seconds)
        return updated

    async def persist(self, key: str, namespace: Optional[str] = None) -> bool:
        """Remove the TTL from an entry and its metadata record."""
        cache_key = self._cache_key(key, namespace)
        with self._operation('persist', key, namespace):
            updated = bool(await self.redis_client.persist(cache_key))
            await self.redis_client.persist(meta_key(cache_key))
        return updated

    # Counters

    async def increment(self, key: str, amount: int = 1, *, ttl: TTLValue = None,
                        namespace: Optional[str] = None) -> int:
        """Add `amount` to an integer counter, creating it at 0, and refresh its TTL."""
        cache_key = self._cache_key(key, namespace)
        with self._operation('increment', key, namespace):
            value = int(await self.redis_client.incrby(cache_key, amount))
            await self._sync_ttl(cache_key, self._ttl(ttl))
        return value

    async def decrement(self, key: str, amount: int = 1, *, ttl: TTLValue = None,
                        namespace: Optional[str] = None) -> int:
        return await self.increment(key, -amount, ttl=ttl, namespace=namespace)

    # Lists

    async def list_push(self, key: str, value: Any, *, ttl: TTLValue = None,
                        namespace: Optional[str] = None) -> int:
        """Push onto the head of a list; returns the new length."""
        cache_key = self._cache_key(key, namespace)
        with self._operation('list_push', key, namespace):
            length = int(await self.redis_client.lpush(cache_key, serialize(value)))
            await self._expire_structure(cache_key, ttl)
        return length

    async def list_pop(self, key: str, namespace: Optional[str] = None) -> Any:
        """Pop from the head of a list; None when the list is empty."""
        cache_key = self._cache_key(key, namespace)
        with self._operation('list_pop', key, namespace):
            raw = await self.redis_client.lpop(cache_key)
        if raw is None:
            return None
        return deserialize(ensure_str(raw))

    async def list_length(self, key: str, namespace: Optional[str] = None) -> int:
        cache_key = self._cache_key(key, namespace)
        with self._operation('list_length', key, namespace):
            return int(await self.redis_client.llen(cache_key))

    # Sets

    async def set_add(self, key: str, value: Any, *, ttl: TTLValue = None,
                      namespace: Optional[str] = None) -> bool:
        """Add a member; False when it was already present."""
        cache_key = self._cache_key(key, namespace)
        with self._operation('set_add', key, namespace):
            added = int(await self.redis_client.sadd(cache_key, serialize(value)))
            await self._expire_structure(cache_key, ttl)
        return added == 1

    async def set_remove(self, key: str, value: Any, namespace: Optional[str] = None) -> bool:
        cache_key = self._cache_key(key, namespace)
        with self._operation('set_remove', key, namespace):
            return int(await self.redis_client.srem(cache_key, serialize(value))) == 1

    async def set_contains(self, key: str, value: Any, namespace: Optional[str] = None) -> bool:
        cache_key = self._cache_key(key, namespace)
        with self._operation('set_contains', key, namespace):
            return bool(await self.redis_client.sismember(cache_key, serialize(value)))

    async def set_members(self, key: str, namespace: Optional[str] = None) -> List[Any]:
        cache_key = self._cache_key(key, namespace)
        with self._operation('set_members', key, namespace):
            members = await self.redis_client.smembers(cache_key)
        return [deserialize(ensure_str(member)) for member in members]

    async def set_size(self, key: str, namespace: Optional[str] = None) -> int:
        cache_key = self._cache_key(key, namespace)
        with self._operation('set_size', key, namespace):
            return int(await self.redis_client.scard(cache_key))

    async def _expire_structure(self, cache_key: str, ttl: TTLValue) -> None:
        ttl_seconds = self._ttl(ttl)
        if ttl_seconds:
            await self.redis_client.expire(cache_key, ttl_seconds)


# Global advanced cache instance
_advanced_cache: Optional[AdvancedCache] = None


def get_advanced_cache() -> AdvancedCache:
    """Get the global advanced cache instance, replacing it if it was destroyed."""
    global _advanced_cache
    if _advanced_cache is None or _advanced_cache.destroyed:
        _advanced_cache = AdvancedCache(get_settings())
    return _advanced_cache


async def initialize_advanced_cache() -> AdvancedCache:
    cache = get_advanced_cache()
    await cache.start()
    return cache


async def shutdown_advanced_cache() -> None:
    global _advanced_cache
    if _advanced_cache:
        await _advanced_cache.destroy()
        _advanced_cache = None
