"""
Frache: a caching layer for Redis with tags, compression and cache warming.
"""

from .caching import (
    AdvancedCache,
    Cache,
    CacheEvent,
    CacheEventType,
    WarmupStatus,
    WarmupTask,
    cached,
    get_advanced_cache,
    get_cache,
    initialize_advanced_cache,
    initialize_cache,
    shutdown_advanced_cache,
    shutdown_cache,
)
from .config import CacheSettings, get_settings
from .exceptions import (
    CompressionError,
    FracheError,
    SerializationError,
    StoreError,
    TaskNotFoundError,
    TaskTimeoutError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    'AdvancedCache',
    'Cache',
    'CacheEvent',
    'CacheEventType',
    'CacheSettings',
    'WarmupStatus',
    'WarmupTask',
    'cached',
    'get_advanced_cache',
    'get_cache',
    'get_settings',
    'initialize_advanced_cache',
    'initialize_cache',
    'shutdown_advanced_cache',
    'shutdown_cache',
    'CompressionError',
    'FracheError',
    'SerializationError',
    'StoreError',
    'TaskNotFoundError',
    'TaskTimeoutError',
    'ValidationError',
]
