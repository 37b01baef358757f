"""
Shared fixtures for the Frache test suite.

Redis is replaced by fakeredis; each test gets its own in-memory server.
"""
import pytest
import pytest_asyncio
import fakeredis
from fakeredis import aioredis as fake_aioredis

from frache.config import CacheSettings
from frache.caching import AdvancedCache, Cache
from frache.metrics_collector import MetricsCollector


@pytest.fixture
def settings():
    """Settings with the background warmup worker disabled."""
    return CacheSettings(_env_file=None, enable_warmup=False)


@pytest.fixture
def redis_client():
    """Async fake Redis client with an isolated server."""
    return fake_aioredis.FakeRedis(server=fakeredis.FakeServer())


@pytest_asyncio.fixture
async def cache(settings, redis_client):
    instance = Cache(settings=settings, redis_client=redis_client)
    yield instance
    await instance.destroy()


@pytest_asyncio.fixture
async def advanced_cache(settings, redis_client):
    instance = AdvancedCache(settings=settings, redis_client=redis_client)
    yield instance
    await instance.destroy()


@pytest.fixture
def received_events(cache):
    """Every event emitted by the cache fixture, in order."""
    events = []
    cache.subscribe(events.append)
    return events


@pytest.fixture
def metrics_collector():
    """Fresh metrics registry for the duration of a test."""
    MetricsCollector.reset_instance()
    yield MetricsCollector.get_instance()
    MetricsCollector.reset_instance()
