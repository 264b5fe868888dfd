"""
Shared fixtures for Catalog service tests.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.config import get_config
from shared.errors import ConflictError, NotFoundError
from shared.metrics import MetricsCollector
from service_catalog.app.catalog.models import (
    CategoryResponse, ProductCreateRequest, ProductListQuery, ProductResponse,
    ProductUpdateRequest
)
from service_catalog.app.main import CatalogService
from service_catalog.app.storage.local import LocalBlobStorage

TEST_API_KEY = "test-admin-key"


class FakePipeline:
    """Buffers commands and applies them together on execute."""

    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.commands: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.commands = []

    def set(self, key, value, nx=False):
        self.commands.append(("set", key, value, nx))
        return self

    def incr(self, key):
        self.commands.append(("incr", key))
        return self

    def expire(self, key, seconds):
        self.commands.append(("expire", key, seconds))
        return self

    async def execute(self):
        if self.redis.fail:
            raise RedisConnectionError("Connection refused")
        results = []
        for name, *args in self.commands:
            results.append(getattr(self.redis, f"_{name}")(*args))
        self.commands = []
        return results


class FakeRedis:
    """In-memory stand-in for a decode_responses=True asyncio Redis client."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _set(self, key, value, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = str(value)
        return True

    def _incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    def _expire(self, key, seconds):
        if key not in self.store:
            return False
        self.ttls[key] = seconds
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, nx=False):
        self._check()
        return self._set(key, value, nx)

    async def setex(self, key, seconds, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = seconds
        return True

    async def incr(self, key):
        self._check()
        return self._incr(key)

    async def ping(self):
        self._check()
        return True

    async def info(self):
        self._check()
        return {
            "redis_version": "7.2.0",
            "used_memory_human": "1.00M",
            "connected_clients": 1,
            "keyspace_hits": 3,
            "keyspace_misses": 1
        }

    async def aclose(self):
        self.closed = True

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def keys_with_prefix(self, prefix: str) -> List[str]:
        return sorted(key for key in self.store if key.startswith(prefix))


class InMemoryPersistence:
    """Product store with the same contract as PostgreSQLPersistence."""

    def __init__(self):
        self.products: Dict[int, ProductResponse] = {}
        self.categories: Dict[str, int] = {}
        self.list_calls = 0
        self.healthy = True
        self._next_id = 1

    async def start(self):
        pass

    async def stop(self):
        pass

    async def health_check(self) -> bool:
        return self.healthy

    def _category(self, name: str) -> CategoryResponse:
        if name not in self.categories:
            self.categories[name] = len(self.categories) + 1
        return CategoryResponse(id=self.categories[name], name=name)

    async def list_with_count(self, query: ProductListQuery):
        self.list_calls += 1
        items = [
            product for product in self.products.values()
            if not query.category or (product.category and product.category.name == query.category)
        ]
        items.sort(key=lambda product: product.id)
        return items[query.offset:query.offset + query.limit], len(items)

    async def get_product(self, product_id: int) -> ProductResponse:
        if product_id not in self.products:
            raise NotFoundError("Product", product_id)
        return self.products[product_id]

    async def create_product(self, request: ProductCreateRequest) -> ProductResponse:
        if any(product.sku == request.sku for product in self.products.values()):
            raise ConflictError("Product with this SKU already exists")
        now = datetime.now(timezone.utc)
        product = ProductResponse(
            id=self._next_id,
            sku=request.sku,
            name=request.name,
            description=request.description,
            price=request.price,
            currency=request.currency,
            stock=request.stock,
            image_url=request.image_url,
            category=self._category(request.category),
            created_at=now,
            updated_at=now
        )
        self.products[product.id] = product
        self._next_id += 1
        return product

    async def update_product(self, product_id: int, request: ProductUpdateRequest) -> ProductResponse:
        current = await self.get_product(product_id)
        changes: Dict[str, Any] = request.model_dump(exclude_unset=True)
        category: Optional[str] = changes.pop("category", None)
        if category is not None:
            changes["category"] = self._category(category)
        changes["updated_at"] = datetime.now(timezone.utc)
        updated = current.model_copy(update=changes)
        self.products[product_id] = updated
        return updated

    async def delete_product(self, product_id: int) -> None:
        if self.products.pop(product_id, None) is None:
            raise NotFoundError("Product", product_id)


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.histograms = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self.histograms.append((metric_name, value, labels))


@pytest.fixture
def fake_redis():
    """Reachable in-memory Redis."""
    return FakeRedis()


@pytest.fixture
def failing_redis():
    """Redis client whose every command fails with a connection error."""
    return FakeRedis(fail=True)


@pytest.fixture
def persistence():
    """In-memory product persistence."""
    return InMemoryPersistence()


@pytest.fixture
def dummy_metrics():
    return DummyMetrics()


@pytest.fixture
def catalog_metrics():
    """Real collector on its own registry."""
    return MetricsCollector("catalog")


@pytest.fixture
def blob_storage(tmp_path):
    storage = LocalBlobStorage(str(tmp_path / "uploads"))
    storage.start()
    return storage


@pytest.fixture
def catalog_config(tmp_path):
    """Service configuration isolated from the developer environment."""
    return get_config(
        "catalog",
        8000,
        env="test",
        api_key=TEST_API_KEY,
        upload_dir=str(tmp_path / "uploads"),
        cache_enabled=True,
        cache_ttl_seconds=60,
        rate_limit_enabled=True,
        rate_limit_per_minute=500,
        enable_tracing=False
    )


@pytest.fixture
def catalog_service(catalog_config, fake_redis, persistence):
    """Catalog service wired to in-memory Redis and persistence."""
    return CatalogService(catalog_config, persistence=persistence, redis_client=fake_redis)


@pytest.fixture
def client(catalog_service):
    """Create test client."""
    return TestClient(catalog_service.app)


@pytest.fixture
def auth_headers():
    return {"X-API-Key": TEST_API_KEY}
