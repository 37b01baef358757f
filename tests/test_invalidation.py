"""
Tests for pattern and tag based invalidation.
"""
import pytest
import pytest_asyncio

from frache.config import CacheSettings
from frache.caching.cache_manager import Cache
from frache.caching.invalidation import CacheInvalidator, parse_tags


@pytest.fixture
def small_page_settings():
    """Tiny SCAN pages so every test walks several cursors."""
    return CacheSettings(_env_file=None, enable_warmup=False, scan_count=2)


@pytest.fixture
def invalidator(redis_client, small_page_settings):
    return CacheInvalidator(redis_client, small_page_settings)


@pytest_asyncio.fixture
async def populated(redis_client, small_page_settings):
    """Ten tagged entries, five untagged ones and one entry in another namespace."""
    cache = Cache(settings=small_page_settings, redis_client=redis_client)
    for i in range(10):
        await cache.set(f"item:{i}", i, tags=["even" if i % 2 == 0 else "odd", "items"])
    for i in range(5):
        await cache.set(f"plain:{i}", i)
    await cache.set("item:0", "elsewhere", namespace="other", tags=["even"])
    return cache


class TestParseTags:
    """Test decoding of stored tag lists."""

    def test_parse_tags(self):
        assert parse_tags('["a", "b"]') == ["a", "b"]
        assert parse_tags(None) == []
        assert parse_tags("") == []

    def test_parse_tags_rejects_non_list(self):
        with pytest.raises(ValueError):
            parse_tags('{"a": 1}')
        with pytest.raises(ValueError):
            parse_tags("not json")


class TestCacheInvalidator:
    """Test the SCAN driven invalidation paths."""

    @pytest.mark.asyncio
    async def test_scan_pages_covers_every_key(self, invalidator, populated):
        seen = []
        async for page in invalidator.scan_pages("frache:cache:plain:*"):
            seen.extend(page)

        assert sorted(seen) == [f"frache:cache:plain:{i}" for i in range(5)]
        assert invalidator.stats['keys_scanned'] >= 5

    @pytest.mark.asyncio
    async def test_clear_by_tags(self, invalidator, populated, redis_client):
        removed = await invalidator.clear_by_tags(["even"])

        assert removed == 10
        for i in range(10):
            exists = await redis_client.exists(f"frache:cache:item:{i}")
            meta_exists = await redis_client.exists(f"frache:cache:item:{i}:meta")
            assert exists == meta_exists == (i % 2)
        assert await redis_client.exists("frache:other:item:0") == 1
        assert invalidator.stats['keys_invalidated'] == 10

    @pytest.mark.asyncio
    async def test_clear_by_any_matching_tag(self, invalidator, populated):
        assert await invalidator.clear_by_tags(["even", "odd"]) == 20

    @pytest.mark.asyncio
    async def test_clear_by_tags_in_namespace(self, invalidator, populated, redis_client):
        assert await invalidator.clear_by_tags(["even"], namespace="other") == 2
        assert await redis_client.exists("frache:cache:item:0") == 1

    @pytest.mark.asyncio
    async def test_clear_by_unknown_or_empty_tags(self, invalidator, populated):
        assert await invalidator.clear_by_tags(["missing"]) == 0
        assert await invalidator.clear_by_tags([]) == 0

    @pytest.mark.asyncio
    async def test_unreadable_tag_list_is_skipped(self, invalidator, populated, redis_client):
        await redis_client.set("frache:cache:broken", "1")
        await redis_client.hset("frache:cache:broken:meta", mapping={"compressed": "false", "tags": "{oops"})

        assert await invalidator.clear_by_tags(["even"]) == 10
        assert await redis_client.exists("frache:cache:broken") == 1

    @pytest.mark.asyncio
    async def test_delete_by_pattern_removes_pairs(self, invalidator, populated, redis_client):
        removed = await invalidator.delete_by_pattern("frache:cache:item:*")

        assert removed == 20
        assert await redis_client.exists("frache:cache:plain:0") == 1
        assert invalidator.stats['pattern_invalidations'] == 1

    @pytest.mark.asyncio
    async def test_delete_by_pattern_matching_only_metadata(self, invalidator, populated, redis_client):
        removed = await invalidator.delete_by_pattern("frache:cache:item:1:meta")

        assert removed == 2
        assert await redis_client.exists("frache:cache:item:1") == 0

    @pytest.mark.asyncio
    async def test_delete_by_pattern_without_matches(self, invalidator):
        assert await invalidator.delete_by_pattern("frache:cache:none:*") == 0
