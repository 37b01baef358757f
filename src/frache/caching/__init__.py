"""
Redis caching layer for Frache.

- Namespaced entries with tag-based bulk invalidation
- Optional gzip compression and pluggable serialization
- Hit/miss/error statistics and cache events
- Prioritized warmup task scheduling
- Batch, counter, list and set helpers
"""

from .cache_manager import (
    Cache,
    cached,
    get_cache,
    initialize_cache,
    shutdown_cache
)

from .advanced_cache import (
    AdvancedCache,
    get_advanced_cache,
    initialize_advanced_cache,
    shutdown_advanced_cache
)

from .cache_warming import (
    WarmupScheduler,
    WarmupTask,
    QueuedWarmup
)

from .events import (
    CacheEvent,
    CacheEventType,
    EventBus,
    WarmupStatus
)

from .invalidation import CacheInvalidator

from .keys import build_key, build_scan_pattern, hash_key, validate_key

from .utils import parse_ttl, retry

__all__ = [
    # Core classes
    'Cache',
    'AdvancedCache',
    'CacheInvalidator',

    # Warmup
    'WarmupScheduler',
    'WarmupTask',
    'QueuedWarmup',

    # Events
    'CacheEvent',
    'CacheEventType',
    'EventBus',
    'WarmupStatus',

    # Decorators and utilities
    'cached',
    'build_key',
    'build_scan_pattern',
    'hash_key',
    'validate_key',
    'parse_ttl',
    'retry',

    # Factory functions
    'get_cache',
    'get_advanced_cache',

    # Lifecycle functions
    'initialize_cache',
    'shutdown_cache',
    'initialize_advanced_cache',
    'shutdown_advanced_cache'
]
