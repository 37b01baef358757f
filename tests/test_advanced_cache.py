"""
Tests for batch operations and the counter, list and set helpers.
"""
import pytest
from unittest.mock import patch

from frache.caching import advanced_cache as advanced_cache_module
from frache.caching.advanced_cache import get_advanced_cache, shutdown_advanced_cache


class TestBatchOperations:
    """Test multi-key helpers."""

    @pytest.mark.asyncio
    async def test_set_many_and_get_many(self, advanced_cache):
        results = await advanced_cache.set_many({"a": 1, "b": {"x": 2}, "c": "three"}, ttl=60)

        assert results == [True, True, True]
        values = await advanced_cache.get_many(["a", "b", "c", "missing"])
        assert values == {"a": 1, "b": {"x": 2}, "c": "three", "missing": None}

    @pytest.mark.asyncio
    async def test_set_many_shares_options(self, advanced_cache):
        await advanced_cache.set_many({"a": 1, "b": 2}, tags=["batch"], namespace="ns")

        assert await advanced_cache.clear(tags=["batch"], namespace="ns") == 4

    @pytest.mark.asyncio
    async def test_set_many_nx(self, advanced_cache):
        await advanced_cache.set("a", "old")

        assert await advanced_cache.set_many({"a": "new", "b": "new"}, nx=True) == [False, True]
        assert await advanced_cache.get("a") == "old"

    @pytest.mark.asyncio
    async def test_get_many_default(self, advanced_cache):
        values = await advanced_cache.get_many(["x"], default=0)

        assert values == {"x": 0}

    @pytest.mark.asyncio
    async def test_delete_many(self, advanced_cache):
        await advanced_cache.set("a", 1)
        await advanced_cache.set("b", 2, tags=["t"])

        assert await advanced_cache.delete_many(["a", "b", "missing"]) == 3
        assert await advanced_cache.get("a") is None


class TestKeyHelpers:
    """Test existence and TTL helpers."""

    @pytest.mark.asyncio
    async def test_exists(self, advanced_cache):
        await advanced_cache.set("a", 0)

        assert await advanced_cache.exists("a") is True
        assert await advanced_cache.exists("b") is False
        # existence checks do not count as reads
        assert advanced_cache.get_stats()['total_requests'] == 0

    @pytest.mark.asyncio
    async def test_ttl(self, advanced_cache):
        await advanced_cache.set("a", 1, ttl=100)

        assert 0 < await advanced_cache.ttl("a") <= 100
        assert await advanced_cache.ttl("missing") == -2

    @pytest.mark.asyncio
    async def test_expire_and_persist_follow_metadata(self, advanced_cache, redis_client):
        await advanced_cache.set("a", 1, ttl=100, tags=["t"])

        assert await advanced_cache.expire("a", 1000) is True
        assert await redis_client.ttl("frache:cache:a") > 100
        assert await redis_client.ttl("frache:cache:a:meta") > 100

        assert await advanced_cache.persist("a") is True
        assert await advanced_cache.ttl("a") == -1
        assert await redis_client.ttl("frache:cache:a:meta") == -1

    @pytest.mark.asyncio
    async def test_expire_missing_key(self, advanced_cache):
        assert await advanced_cache.expire("missing", 10) is False


class TestCounters:
    """Test increment and decrement."""

    @pytest.mark.asyncio
    async def test_increment(self, advanced_cache):
        assert await advanced_cache.increment("c", 5) == 5
        assert await advanced_cache.increment("c", -2) == 3
        assert await advanced_cache.get("c") == 3

    @pytest.mark.asyncio
    async def test_decrement(self, advanced_cache):
        await advanced_cache.increment("c", 10)

        assert await advanced_cache.decrement("c") == 9
        assert await advanced_cache.decrement("c", 4) == 5

    @pytest.mark.asyncio
    async def test_increment_refreshes_ttl(self, advanced_cache):
        await advanced_cache.increment("c", ttl=30)
        assert 0 < await advanced_cache.ttl("c") <= 30

        await advanced_cache.increment("c", ttl=300)
        assert await advanced_cache.ttl("c") > 30


class TestLists:
    """Test list helpers."""

    @pytest.mark.asyncio
    async def test_push_pop_length(self, advanced_cache):
        assert await advanced_cache.list_push("recent", "product:1") == 1
        assert await advanced_cache.list_push("recent", {"id": 2}) == 2
        assert await advanced_cache.list_length("recent") == 2

        assert await advanced_cache.list_pop("recent") == {"id": 2}
        assert await advanced_cache.list_pop("recent") == "product:1"
        assert await advanced_cache.list_pop("recent") is None
        assert await advanced_cache.list_length("recent") == 0

    @pytest.mark.asyncio
    async def test_push_sets_ttl(self, advanced_cache):
        await advanced_cache.list_push("recent", 1, ttl=50)

        assert 0 < await advanced_cache.ttl("recent") <= 50


class TestSets:
    """Test set helpers."""

    @pytest.mark.asyncio
    async def test_set_operations(self, advanced_cache):
        assert await advanced_cache.set_add("active", "user:1") is True
        assert await advanced_cache.set_add("active", "user:2") is True
        assert await advanced_cache.set_add("active", "user:1") is False

        assert await advanced_cache.set_size("active") == 2
        assert await advanced_cache.set_contains("active", "user:1") is True
        assert sorted(await advanced_cache.set_members("active")) == ["user:1", "user:2"]

        assert await advanced_cache.set_remove("active", "user:1") is True
        assert await advanced_cache.set_remove("active", "user:1") is False
        assert await advanced_cache.set_contains("active", "user:1") is False

    @pytest.mark.asyncio
    async def test_structured_members(self, advanced_cache):
        await advanced_cache.set_add("ids", 7)

        assert await advanced_cache.set_members("ids") == [7]
        assert await advanced_cache.set_contains("ids", 7) is True


class TestGlobalInstance:
    """Test the module-level advanced cache."""

    @pytest.mark.asyncio
    async def test_recreated_after_destroy(self, settings):
        with patch.object(advanced_cache_module, 'get_settings', return_value=settings):
            first = get_advanced_cache()
            assert get_advanced_cache() is first

            await first.destroy()
            assert get_advanced_cache() is not first

            await shutdown_advanced_cache()
            assert advanced_cache_module._advanced_cache is None
