"""
Fixed-window rate limiter for the Catalog Service.
"""

import time
from typing import Dict, Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger


class FixedWindowRateLimiter:
    """Distributed per-client request limiter using Redis counters.

    Each client gets one counter per window, incremented and given its expiry
    in a single pipeline. When Redis is unavailable requests are allowed.
    """

    def __init__(self, client: redis.Redis, limit: int, window_seconds: int = 60):
        self.redis = client
        self.limit = limit
        self.window_seconds = window_seconds
        self.logger = get_logger("catalog.rate_limiter")

    def _make_key(self, client_id: str, window: int) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{client_id}:{window}"

    async def check_rate_limit(self, client_id: str) -> Dict[str, Any]:
        """Count a request for ``client_id`` and report whether it is allowed."""
        now = time.time()
        window = int(now // self.window_seconds)
        reset_in = int(self.window_seconds - (now % self.window_seconds)) or self.window_seconds
        key = self._make_key(client_id, window)

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.window_seconds)
                results = await pipe.execute()
        except RedisError as e:
            self.logger.error("Rate limit check error", client_id=client_id, error=str(e))
            return {
                "allowed": True,
                "current_count": 0,
                "limit": self.limit,
                "remaining": self.limit,
                "reset_in_seconds": reset_in,
                "error": "Redis unavailable"
            }

        current_count = int(results[0])
        if current_count > self.limit:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                current_count=current_count,
                limit=self.limit
            )
            return {
                "allowed": False,
                "current_count": current_count,
                "limit": self.limit,
                "remaining": 0,
                "reset_in_seconds": reset_in,
                "retry_after": reset_in
            }

        return {
            "allowed": True,
            "current_count": current_count,
            "limit": self.limit,
            "remaining": max(0, self.limit - current_count),
            "reset_in_seconds": reset_in
        }
