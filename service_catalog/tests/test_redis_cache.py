"""
Unit tests for the Redis cache store.
"""

import asyncio
import json

import pytest

from shared.errors import CacheSerializationError, CacheStoreUnavailable
from service_catalog.app.cache.redis_cache import DEFAULT_VERSION, RedisCache


class TestRedisCache:
    """Test cases for RedisCache."""

    @pytest.fixture
    def cache(self, fake_redis):
        return RedisCache("redis://localhost:6379/0", client=fake_redis)

    @pytest.fixture
    def broken_cache(self, failing_redis):
        return RedisCache("redis://localhost:6379/0", client=failing_redis)

    @pytest.mark.asyncio
    async def test_version_defaults_to_one(self, cache):
        assert await cache.get_version("products") == DEFAULT_VERSION == 1

    @pytest.mark.asyncio
    async def test_first_bump_moves_to_two(self, cache, fake_redis):
        assert await cache.bump_version("products") == 2
        assert await cache.get_version("products") == 2
        assert fake_redis.store["cache:products:version"] == "2"

    @pytest.mark.asyncio
    async def test_bump_continues_from_existing_version(self, cache, fake_redis):
        fake_redis.store["cache:products:version"] = "7"
        assert await cache.bump_version("products") == 8

    @pytest.mark.asyncio
    async def test_concurrent_bumps_are_not_lost(self, cache):
        before = await cache.get_version("products")
        results = await asyncio.gather(*(cache.bump_version("products") for _ in range(20)))

        assert await cache.get_version("products") == before + 20
        assert sorted(results) == list(range(before + 1, before + 21))

    @pytest.mark.asyncio
    async def test_families_are_independent(self, cache):
        await cache.bump_version("products")
        assert await cache.get_version("categories") == 1

    @pytest.mark.asyncio
    async def test_non_integer_version_is_serialization_error(self, cache, fake_redis):
        fake_redis.store["cache:products:version"] = "garbage"
        with pytest.raises(CacheSerializationError):
            await cache.get_version("products")

    @pytest.mark.asyncio
    async def test_set_and_get_round_trip(self, cache, fake_redis):
        payload = {"items": [{"id": 1, "name": "Lamp"}], "total": 1}
        await cache.set("products:v1:abc", payload, 60)

        assert await cache.get("products:v1:abc") == payload
        assert fake_redis.ttls["products:v1:abc"] == 60
        assert json.loads(fake_redis.store["products:v1:abc"]) == payload

    @pytest.mark.asyncio
    async def test_get_missing_key(self, cache):
        assert await cache.get("products:v1:missing") is None

    @pytest.mark.asyncio
    async def test_get_corrupt_entry(self, cache, fake_redis):
        fake_redis.store["products:v1:abc"] = "{not json"
        with pytest.raises(CacheSerializationError):
            await cache.get("products:v1:abc")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["[]", "42", "\"text\"", "null"])
    async def test_get_non_object_entry(self, cache, fake_redis, raw):
        fake_redis.store["products:v1:abc"] = raw
        with pytest.raises(CacheSerializationError):
            await cache.get("products:v1:abc")

    @pytest.mark.asyncio
    async def test_set_unserializable_payload(self, cache, fake_redis):
        with pytest.raises(CacheSerializationError):
            await cache.set("products:v1:abc", {"price": float("nan")}, 60)
        assert "products:v1:abc" not in fake_redis.store

    @pytest.mark.asyncio
    async def test_unreachable_store(self, broken_cache):
        with pytest.raises(CacheStoreUnavailable):
            await broken_cache.get_version("products")
        with pytest.raises(CacheStoreUnavailable):
            await broken_cache.bump_version("products")
        with pytest.raises(CacheStoreUnavailable):
            await broken_cache.get("products:v1:abc")
        with pytest.raises(CacheStoreUnavailable):
            await broken_cache.set("products:v1:abc", {"a": 1}, 60)

    @pytest.mark.asyncio
    async def test_start_tolerates_unreachable_store(self, broken_cache):
        await broken_cache.start()
        assert await broken_cache.health_check() is False

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, cache, fake_redis):
        await cache.stop()
        assert fake_redis.closed is True

    @pytest.mark.asyncio
    async def test_cache_stats(self, cache, broken_cache):
        stats = await cache.get_cache_stats()
        assert stats["redis_version"] == "7.2.0"
        assert stats["hit_rate"] == 0.75
        assert await broken_cache.get_cache_stats() == {}
