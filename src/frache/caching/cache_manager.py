"""
Redis-backed cache for Frache.

Adds namespacing, tag-based invalidation, optional compression, hit/miss
statistics, event notification and warmup scheduling on top of a Redis
connection. Each entry is a primary value plus, when it was written with
tags or compressed, a metadata hash at "{key}:meta" sharing the same TTL.
"""

import asyncio
import functools
import inspect
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..config import CacheSettings, get_settings
from ..exceptions import StoreError, ValidationError
from ..logging_config import get_logger
from ..metrics_collector import get_metrics_collector
from .cache_warming import WarmupScheduler, WarmupTask
from .events import CacheEvent, CacheEventType, EventBus, EventListener
from .invalidation import TAGS_FIELD, CacheInvalidator
from .keys import build_key, build_scan_pattern, hash_key, meta_key, validate_key
from .serialization import (
    compress_async,
    decompress_async,
    deserialize,
    ensure_str,
    serialize,
    should_compress,
)
from .utils import TTLValue, parse_ttl

COMPRESSED_FIELD = "compressed"


class Cache:
    """Namespaced Redis cache with tags, compression and warmup tasks."""

    def __init__(self, settings: Optional[CacheSettings] = None, redis_client: Optional[Redis] = None):
        self.settings = settings or get_settings()
        self.redis_client: Redis = redis_client or redis.from_url(
            self.settings.redis_url,
            max_connections=self.settings.redis_max_connections,
            decode_responses=False  # values may be gzip bytes
        )
        self.logger = get_logger(__name__, 'cache')
        self.metrics = get_metrics_collector()

        self.events = EventBus()
        self.invalidator = CacheInvalidator(self.redis_client, self.settings)
        self.warmer = WarmupScheduler(self.events, self.settings.warmup_interval)
        self.destroyed = False

        self.stats = {
            'hits': 0,
            'misses': 0,
            'sets': 0,
            'deletes': 0,
            'errors': 0
        }

    # Key helpers

    def _namespace(self, namespace: Optional[str]) -> str:
        return namespace or self.settings.default_namespace

    def _cache_key(self, key: str, namespace: Optional[str]) -> str:
        validate_key(key)
        return build_key(key, self._namespace(namespace), self.settings.key_prefix)

    def _ttl(self, ttl: TTLValue) -> Optional[int]:
        # 0 and None both mean "use the default"; a default of 0 means no expiry
        return parse_ttl(ttl) or self.settings.default_ttl or None

    # Statistics and events

    def _count(self, stat: str, namespace: str, amount: int = 1) -> None:
        self.stats[stat] += amount
        self.metrics.record_cache_operation(stat, namespace, amount)

    def _emit(self, event_type: CacheEventType, key: Optional[str] = None,
              namespace: Optional[str] = None, error: Optional[BaseException] = None, **data) -> None:
        self.events.emit(CacheEvent(type=event_type, key=key, namespace=namespace, data=data, error=error))

    @contextmanager
    def _operation(self, operation: str, key: Optional[str] = None, namespace: Optional[str] = None):
        """Count, publish and log any failure inside a cache operation, then re-raise it."""
        try:
            yield
        except RedisError as e:
            error = StoreError(f"Redis {operation} failed: {e}", e)
            self._record_error(operation, error, key, namespace)
            raise error from e
        except Exception as e:
            self._record_error(operation, e, key, namespace)
            raise

    def _record_error(self, operation: str, error: Exception, key: Optional[str], namespace: Optional[str]) -> None:
        self._count('errors', namespace or self.settings.default_namespace)
        self.logger.error(
            f"Cache {operation} error for key {key}: {error}",
            operation=operation,
            cache_key=key,
            namespace=namespace
        )
        self._emit(CacheEventType.ERROR, key, namespace, error=error, operation=operation)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_requests = self.stats['hits'] + self.stats['misses']
        hit_rate = self.stats['hits'] / total_requests if total_requests > 0 else 0

        return {
            **self.stats,
            'hit_rate': hit_rate,
            'total_requests': total_requests
        }

    def subscribe(self, listener: EventListener, event_type: Optional[CacheEventType] = None) -> None:
        self.events.subscribe(listener, event_type)

    def unsubscribe(self, listener: EventListener, event_type: Optional[CacheEventType] = None) -> bool:
        return self.events.unsubscribe(listener, event_type)

    # Core operations

    async def set(
        self,
        key: str,
        value: Any,
        *,
        ttl: TTLValue = None,
        namespace: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        compress: Optional[bool] = None,
        nx: bool = False,
        xx: bool = False,
        serializer: Optional[Callable[[Any], str]] = None
    ) -> bool:
        """
        Store a value.

        Args:
            key: Logical key
            value: Any JSON-serializable value, or anything `serializer` accepts
            ttl: Seconds (int, numeric str or timedelta); falsy uses the default TTL
            namespace: Key namespace, defaults to settings.default_namespace
            tags: Labels for bulk invalidation; replace any earlier tags
            compress: Force compression on or off; None compresses above the threshold
            nx: Only write if the key does not exist
            xx: Only write if the key already exists
            serializer: Replaces the default JSON encoding for this call

        Returns:
            False when an nx/xx condition rejected the write
        """
        cache_key = self._cache_key(key, namespace)
        if nx and xx:
            raise ValidationError("nx and xx are mutually exclusive")
        namespace = self._namespace(namespace)
        ttl_seconds = self._ttl(ttl)

        with self._operation('set', key, namespace):
            payload = serializer(value) if serializer else serialize(value)
            tag_list = [str(tag) for tag in tags] if tags else []

            if compress is None:
                compress = self.settings.enable_compression and should_compress(
                    payload, self.settings.compression_threshold
                )
            data = await compress_async(payload) if compress else payload.encode('utf-8')

            written = await self.redis_client.set(cache_key, data, ex=ttl_seconds, nx=nx, xx=xx)
            if not written:
                self.logger.debug(f"Conditional set rejected: {cache_key}", operation="set")
                return False

            await self._write_metadata(cache_key, compress, tag_list, ttl_seconds)

        self._count('sets', namespace)
        self.logger.debug(f"Cache set: {cache_key}", operation="set")
        self._emit(CacheEventType.SET, key, namespace, ttl=ttl_seconds, tags=tag_list, compressed=compress)
        return True

    async def _write_metadata(self, cache_key: str, compressed: bool, tags: list,
                              ttl_seconds: Optional[int]) -> None:
        """Replace the metadata record of a freshly written entry, or drop it."""
        record_key = meta_key(cache_key)
        async with self.redis_client.pipeline(transaction=False) as pipe:
            pipe.delete(record_key)
            if compressed or tags:
                pipe.hset(record_key, mapping={
                    COMPRESSED_FIELD: 'true' if compressed else 'false',
                    TAGS_FIELD: serialize(tags),
                })
                if ttl_seconds:
                    pipe.expire(record_key, ttl_seconds)
            await pipe.execute()

    async def _sync_ttl(self, cache_key: str, ttl_seconds: Optional[int]) -> None:
        """Give an entry and its metadata the same TTL, or remove both TTLs."""
        async with self.redis_client.pipeline(transaction=False) as pipe:
            for record_key in (cache_key, meta_key(cache_key)):
                if ttl_seconds:
                    pipe.expire(record_key, ttl_seconds)
                else:
                    pipe.persist(record_key)
            await pipe.execute()

    async def get(
        self,
        key: str,
        *,
        namespace: Optional[str] = None,
        default: Any = None,
        refresh_ttl: bool = False,
        ttl: TTLValue = None,
        deserializer: Optional[Callable[[str], Any]] = None
    ) -> Any:
        """
        Read a value.

        Returns `default` when the key is missing or expired. With refresh_ttl
        the entry and its metadata get a new TTL (`ttl`, or the default).
        """
        cache_key = self._cache_key(key, namespace)
        namespace = self._namespace(namespace)

        with self._operation('get', key, namespace):
            data, compressed = await asyncio.gather(
                self.redis_client.get(cache_key),
                self.redis_client.hget(meta_key(cache_key), COMPRESSED_FIELD),
            )

            if data is None:
                self._count('misses', namespace)
                self.logger.debug(f"Cache miss: {cache_key}", operation="get")
                self._emit(CacheEventType.MISS, key, namespace)
                return default

            if refresh_ttl:
                await self._sync_ttl(cache_key, self._ttl(ttl))

            if ensure_str(compressed) == 'true':
                text = await decompress_async(data)
            else:
                text = ensure_str(data)
            value = deserializer(text) if deserializer else deserialize(text)

        self._count('hits', namespace)
        self.logger.debug(f"Cache hit: {cache_key}", operation="get")
        self._emit(CacheEventType.HIT, key, namespace)
        return value

    async def delete(self, key: Optional[str] = None, *, namespace: Optional[str] = None,
                     pattern: Optional[str] = None) -> int:
        """
        Delete one entry, or every entry matching `pattern` in the namespace.

        Returns:
            Number of store keys removed, metadata records included
        """
        namespace = self._namespace(namespace)

        if pattern is not None:
            scan_pattern = build_scan_pattern(pattern, namespace, self.settings.key_prefix)
            with self._operation('delete', pattern, namespace):
                removed = await self.invalidator.delete_by_pattern(scan_pattern)
        else:
            if key is None:
                raise ValidationError("delete requires a key or a pattern")
            cache_key = self._cache_key(key, namespace)
            with self._operation('delete', key, namespace):
                removed = int(await self.redis_client.delete(cache_key, meta_key(cache_key)))

        if removed > 0:
            self._count('deletes', namespace, removed)
            self.logger.debug(f"Cache delete: {key or pattern} ({removed} keys)", operation="delete")
            self._emit(CacheEventType.DELETE, key, namespace, pattern=pattern, count=removed)
        return removed

    async def clear(self, *, namespace: Optional[str] = None, pattern: Optional[str] = None,
                    tags: Optional[Iterable[str]] = None) -> int:
        """
        Bulk invalidation.

        With tags, removes every entry in the namespace carrying any of them.
        Otherwise removes every entry in the namespace matching `pattern`
        (all entries when no pattern is given).

        Returns:
            Number of store keys removed, metadata records included
        """
        namespace = self._namespace(namespace)
        tag_list = list(tags) if tags else []

        with self._operation('clear', pattern, namespace):
            if tag_list:
                removed = await self.invalidator.clear_by_tags(tag_list, namespace)
            else:
                scan_pattern = build_scan_pattern(pattern or '*', namespace, self.settings.key_prefix)
                removed = await self.invalidator.delete_by_pattern(scan_pattern)

        if removed > 0:
            self._count('deletes', namespace, removed)
        self.logger.info(f"Cleared {removed} keys from namespace: {namespace}", operation="clear")
        self._emit(CacheEventType.CLEAR, None, namespace, pattern=pattern, tags=tag_list, count=removed)
        return removed

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Any],
        *,
        ttl: TTLValue = None,
        namespace: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        compress: Optional[bool] = None
    ) -> Any:
        """
        Return the cached value, or compute it with `factory` and store it.

        `factory` may be a plain or async callable. Callers that miss at the
        same time each invoke it; there is no locking.
        """
        value = await self.get(key, namespace=namespace)
        if value is not None:
            return value

        value = factory()
        if inspect.isawaitable(value):
            value = await value

        await self.set(key, value, ttl=ttl, namespace=namespace, tags=tags, compress=compress)
        return value

    # Warmup

    def register_warmup_task(self, task: WarmupTask) -> None:
        self.warmer.register(task)

    def unregister_warmup_task(self, task_id: str) -> bool:
        return self.warmer.unregister(task_id)

    def queue_warmup_task(self, task_id: str, priority: Optional[int] = None) -> bool:
        return self.warmer.queue(task_id, priority)

    async def run_warmup_task(self, task_id: str) -> None:
        await self.warmer.run(task_id)

    # Lifecycle

    async def start(self) -> None:
        """Start background warmup when enabled."""
        if self.settings.enable_warmup:
            await self.warmer.start()

    async def destroy(self) -> None:
        """Stop warmup, close the Redis connection and drop listeners."""
        if self.destroyed:
            return
        await self.warmer.stop()
        await self.redis_client.aclose()
        self.events.clear()
        self.destroyed = True
        self.logger.info("Cache destroyed", operation="destroy")

    async def __aenter__(self) -> 'Cache':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.destroy()


# Decorator for caching function results
def cached(namespace: Optional[str] = None, ttl: TTLValue = None,
           key_func: Optional[Callable[..., str]] = None, tags: Optional[Iterable[str]] = None):
    """Cache the results of an async function in the default cache."""
    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError("cached() can only decorate async functions")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if key_func:
                cache_key = key_func(*args, **kwargs)
            else:
                key_parts = [func.__name__]
                key_parts.extend(str(arg) for arg in args)
                key_parts.extend(f"{k}={v}" for k, v in sorted(kwargs.items()))
                cache_key = ":".join(key_parts)
                try:
                    validate_key(cache_key)
                except ValidationError:
                    # long or unprintable arguments
                    cache_key = f"{func.__name__}:hash:{hash_key(cache_key)}"

            return await get_cache().get_or_set(
                cache_key,
                lambda: func(*args, **kwargs),
                ttl=ttl,
                namespace=namespace,
                tags=tags
            )

        return wrapper

    return decorator


# Global cache instance
_cache: Optional[Cache] = None


def get_cache() -> Cache:
    """Get the global cache instance, replacing it if it was destroyed."""
    global _cache
    if _cache is None or _cache.destroyed:
        _cache = Cache(get_settings())
    return _cache


async def initialize_cache() -> Cache:
    """Create the global cache and start its warmup worker."""
    cache = get_cache()
    await cache.start()
    return cache


async def shutdown_cache() -> None:
    """Destroy the global cache."""
    global _cache
    if _cache:
        await _cache.destroy()
        _cache = None
