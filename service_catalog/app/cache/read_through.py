"""
Read-through cache for versioned listing queries.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TYPE_CHECKING

from shared.errors import CacheError
from shared.logging import get_logger
from shared.tracing import add_span_attributes
from .keys import cache_key_for
from .redis_cache import RedisCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CACHE_HIT = "HIT"
CACHE_MISS = "MISS"
CACHE_BYPASS = "BYPASS"


@dataclass
class CacheLookup:
    """Outcome of a read-through lookup."""
    payload: Dict[str, Any]
    status: str
    key: Optional[str] = None

    @property
    def hit(self) -> bool:
        return self.status == CACHE_HIT


class ReadThroughCache:
    """Versioned read-through cache for one resource family.

    Lookups compose the family's current version with the query fingerprint;
    ``invalidate`` bumps the version so every previous key becomes
    unreachable. Cache-layer failures are absorbed here: reads degrade to
    misses and writes are skipped. Loader errors propagate untouched.
    """

    def __init__(
        self,
        store: RedisCache,
        family: str,
        ttl_seconds: int,
        *,
        enabled: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.family = family
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.metrics = metrics
        self.logger = get_logger(f"catalog.cache.{family}")

    async def get_or_load(
        self,
        query: Mapping[str, Any],
        loader: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> CacheLookup:
        """Return the cached payload for ``query`` or compute and store it."""
        if not self.enabled:
            payload = await loader()
            self._record_lookup(CACHE_BYPASS)
            return CacheLookup(payload=payload, status=CACHE_BYPASS)

        key: Optional[str] = None
        cached: Optional[Dict[str, Any]] = None
        try:
            version = await self.store.get_version(self.family)
            key = cache_key_for(self.family, version, query)
            cached = await self.store.get(key)
        except CacheError as exc:
            self._record_error("read", exc)

        if cached is not None:
            self._record_lookup(CACHE_HIT, key)
            return CacheLookup(payload=cached, status=CACHE_HIT, key=key)

        payload = await loader()

        # Without a version there is no key to write under.
        if key is not None:
            try:
                await self.store.set(key, payload, self.ttl_seconds)
            except CacheError as exc:
                self._record_error("write", exc)

        self._record_lookup(CACHE_MISS, key)
        return CacheLookup(payload=payload, status=CACHE_MISS, key=key)

    async def invalidate(self) -> Optional[int]:
        """Bump the family version. Returns the new version, or None on failure."""
        try:
            version = await self.store.bump_version(self.family)
        except CacheError as exc:
            # Entries under the current version stay reachable until their TTL.
            self._record_error("bump_version", exc)
            return None

        if self.metrics:
            self.metrics.increment_counter("cache_version_bumps_total", family=self.family)
        return version

    async def current_version(self) -> Optional[int]:
        try:
            return await self.store.get_version(self.family)
        except CacheError as exc:
            self._record_error("get_version", exc)
            return None

    def _record_lookup(self, status: str, key: Optional[str] = None):
        self.logger.debug("Cache lookup", family=self.family, status=status, cache_key=key)
        add_span_attributes(**{
            "cache.family": self.family,
            "cache.status": status,
            "cache.key": key,
        })
        if self.metrics:
            self.metrics.increment_counter("cache_lookups_total", family=self.family, result=status.lower())

    def _record_error(self, operation: str, exc: CacheError):
        self.logger.warning(
            "Cache operation failed, continuing without cache",
            family=self.family,
            operation=operation,
            code=exc.code,
            details=exc.details
        )
        if self.metrics:
            self.metrics.increment_counter("cache_errors_total", family=self.family, operation=operation)
