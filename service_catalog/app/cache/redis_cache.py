"""
Redis storage for versioned listing caches.
"""

import json
from typing import Dict, Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import CacheStoreUnavailable, CacheSerializationError
from .keys import version_key

DEFAULT_VERSION = 1


class RedisCache:
    """Redis-backed version counters and cache entries.

    Every operation raises ``CacheStoreUnavailable`` when Redis cannot be
    reached and ``CacheSerializationError`` when a payload cannot be encoded
    or decoded. Callers decide whether to absorb them.
    """

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("catalog.cache.redis")
        self.redis: Optional[redis.Redis] = client

    @property
    def client(self) -> redis.Redis:
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30
            )
        return self.redis

    async def start(self):
        """Start the Redis cache.

        An unreachable Redis does not prevent startup; listings are served
        uncached until it comes back.
        """
        try:
            await self.client.ping()
            self.logger.info("Redis cache started")
        except RedisError as e:
            self.logger.warning("Redis unreachable at startup, serving uncached", error=str(e))

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis is not None:
            await self.redis.aclose()
            self.logger.info("Redis cache stopped")

    async def get_version(self, family: str) -> int:
        """Return the current version of ``family``; 1 when never bumped."""
        try:
            raw = await self.client.get(version_key(family))
        except RedisError as e:
            raise CacheStoreUnavailable(details={"operation": "get_version", "error": str(e)}) from e

        if raw is None:
            return DEFAULT_VERSION
        try:
            return int(raw)
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(
                "Version counter is not an integer",
                details={"family": family, "value": str(raw)}
            ) from e

    async def bump_version(self, family: str) -> int:
        """Atomically increment the version of ``family`` and return it.

        ``INCR`` on a missing key yields 1, which equals the lazy default, so
        the default is seeded with ``SET NX`` in the same MULTI/EXEC block.
        """
        key = version_key(family)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(key, DEFAULT_VERSION, nx=True)
                pipe.incr(key)
                results = await pipe.execute()
        except RedisError as e:
            raise CacheStoreUnavailable(details={"operation": "bump_version", "error": str(e)}) from e

        version = int(results[-1])
        self.logger.info("Cache version bumped", family=family, version=version)
        return version

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Get a cached payload, or None when missing or expired."""
        try:
            cached_data = await self.client.get(key)
        except RedisError as e:
            raise CacheStoreUnavailable(details={"operation": "get", "key": key, "error": str(e)}) from e

        if cached_data is None:
            return None

        try:
            payload = json.loads(cached_data)
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(details={"operation": "get", "key": key, "error": str(e)}) from e

        if not isinstance(payload, dict):
            raise CacheSerializationError(
                "Cached payload is not an object",
                details={"operation": "get", "key": key, "type": type(payload).__name__}
            )
        return payload

    async def set(self, key: str, payload: Dict[str, Any], ttl_seconds: int) -> None:
        """Store a payload with its TTL in a single SETEX."""
        try:
            data = json.dumps(payload, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(details={"operation": "set", "key": key, "error": str(e)}) from e

        try:
            await self.client.setex(key, ttl_seconds, data)
        except RedisError as e:
            raise CacheStoreUnavailable(details={"operation": "set", "key": key, "error": str(e)}) from e

        self.logger.debug("Cached payload", cache_key=key, ttl=ttl_seconds)

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        try:
            info = await self.client.info()
        except RedisError as e:
            self.logger.error("Error getting cache stats", error=str(e))
            return {}

        return {
            "redis_version": info.get("redis_version"),
            "used_memory": info.get("used_memory_human"),
            "connected_clients": info.get("connected_clients"),
            "keyspace_hits": info.get("keyspace_hits"),
            "keyspace_misses": info.get("keyspace_misses"),
            "hit_rate": self._calculate_hit_rate(info)
        }

    def _calculate_hit_rate(self, info: Dict[str, Any]) -> float:
        """Calculate cache hit rate."""
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        total = hits + misses

        if total == 0:
            return 0.0

        return hits / total

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.client.ping()
            return True
        except RedisError:
            return False
