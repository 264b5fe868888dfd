"""
Unit tests for the product catalog use cases.
"""

import pytest
from unittest.mock import AsyncMock, patch

from shared.errors import ConflictError, DataLayerError, NotFoundError, StorageError, ValidationError
from shared.test_helpers import TestDataFactory
from service_catalog.app.cache.read_through import CACHE_HIT, CACHE_MISS, ReadThroughCache
from service_catalog.app.cache.redis_cache import RedisCache
from service_catalog.app.catalog.models import (
    ProductCreateRequest, ProductListQuery, ProductUpdateRequest
)
from service_catalog.app.catalog.service import ImageUpload, PRODUCTS_FAMILY, ProductCatalog


class TestProductCatalog:
    """Test cases for ProductCatalog."""

    @pytest.fixture
    def store(self, fake_redis):
        return RedisCache("redis://localhost:6379/0", client=fake_redis)

    @pytest.fixture
    def catalog(self, persistence, store, blob_storage, dummy_metrics):
        listing_cache = ReadThroughCache(store, PRODUCTS_FAMILY, 60, metrics=dummy_metrics)
        return ProductCatalog(
            persistence,
            listing_cache,
            blob_storage,
            max_upload_bytes=1024,
            metrics=dummy_metrics
        )

    @pytest.fixture
    def create_request(self):
        return ProductCreateRequest(**TestDataFactory.create_product_payload())

    @pytest.fixture
    def image(self):
        return ImageUpload(filename="lamp.png", content_type="image/png", data=TestDataFactory.create_test_image())

    @pytest.mark.asyncio
    async def test_listing_is_cached(self, catalog, persistence, create_request):
        await catalog.create_product(create_request)

        first = await catalog.list_products(ProductListQuery())
        second = await catalog.list_products(ProductListQuery())

        assert first.status == CACHE_MISS
        assert second.status == CACHE_HIT
        assert persistence.list_calls == 1
        assert second.payload["total"] == 1
        assert second.payload["total_pages"] == 1
        assert second.payload["items"][0]["sku"] == "LAMP-100"

    @pytest.mark.asyncio
    async def test_empty_listing(self, catalog):
        lookup = await catalog.list_products(ProductListQuery())
        assert lookup.payload["items"] == []
        assert lookup.payload["total"] == 0
        assert lookup.payload["total_pages"] == 0

    @pytest.mark.asyncio
    async def test_total_pages_rounds_up(self, catalog, persistence):
        for index in range(5):
            await catalog.create_product(ProductCreateRequest(sku=f"SKU-{index}", name="Item", price=1))

        lookup = await catalog.list_products(ProductListQuery(page=2, page_size=2))

        assert lookup.payload["total"] == 5
        assert lookup.payload["total_pages"] == 3
        assert [item["sku"] for item in lookup.payload["items"]] == ["SKU-2", "SKU-3"]

    @pytest.mark.asyncio
    async def test_create_invalidates_listing(self, catalog, persistence, create_request):
        await catalog.list_products(ProductListQuery())

        await catalog.create_product(create_request)
        lookup = await catalog.list_products(ProductListQuery())

        assert lookup.status == CACHE_MISS
        assert lookup.key.startswith("products:v2:")
        assert lookup.payload["total"] == 1
        assert persistence.list_calls == 2

    @pytest.mark.asyncio
    async def test_update_and_delete_invalidate_listing(self, catalog, store, create_request):
        product = await catalog.create_product(create_request)

        updated = await catalog.update_product(product.id, ProductUpdateRequest(price=10.0))
        assert updated.price == 10.0
        assert await store.get_version(PRODUCTS_FAMILY) == 3

        await catalog.delete_product(product.id)
        assert await store.get_version(PRODUCTS_FAMILY) == 4

    @pytest.mark.asyncio
    async def test_failed_mutation_does_not_bump(self, catalog, store, create_request):
        await catalog.create_product(create_request)

        with pytest.raises(ConflictError):
            await catalog.create_product(create_request)
        with pytest.raises(NotFoundError):
            await catalog.update_product(999, ProductUpdateRequest(name="Missing"))
        with pytest.raises(NotFoundError):
            await catalog.delete_product(999)

        assert await store.get_version(PRODUCTS_FAMILY) == 2

    @pytest.mark.asyncio
    async def test_bump_happens_after_commit(self, catalog, persistence, create_request):
        calls = []
        original_create = persistence.create_product

        async def tracked_create(request):
            calls.append("persist")
            return await original_create(request)

        async def tracked_invalidate():
            calls.append("invalidate")
            return 2

        with patch.object(persistence, "create_product", side_effect=tracked_create), \
                patch.object(catalog.listing_cache, "invalidate", side_effect=tracked_invalidate):
            await catalog.create_product(create_request)

        assert calls == ["persist", "invalidate"]

    @pytest.mark.asyncio
    async def test_mutation_succeeds_when_bump_fails(self, persistence, failing_redis, blob_storage, create_request):
        store = RedisCache("redis://localhost:6379/0", client=failing_redis)
        catalog = ProductCatalog(
            persistence,
            ReadThroughCache(store, PRODUCTS_FAMILY, 60),
            blob_storage,
            max_upload_bytes=1024
        )

        product = await catalog.create_product(create_request)

        assert product.id in persistence.products

    @pytest.mark.asyncio
    async def test_mutation_metrics(self, catalog, dummy_metrics, create_request):
        product = await catalog.create_product(create_request)
        await catalog.delete_product(product.id)

        operations = [
            labels["operation"] for name, labels in dummy_metrics.counters
            if name == "product_mutations_total"
        ]
        assert operations == ["create", "delete"]

    @pytest.mark.asyncio
    async def test_data_layer_error_propagates(self, catalog, persistence):
        with patch.object(
            persistence, "list_with_count", new_callable=AsyncMock, side_effect=DataLayerError("down")
        ):
            with pytest.raises(DataLayerError):
                await catalog.list_products(ProductListQuery())


class TestProductUpload:
    """Test cases for product creation with an image."""

    @pytest.fixture
    def store(self, fake_redis):
        return RedisCache("redis://localhost:6379/0", client=fake_redis)

    @pytest.fixture
    def catalog(self, persistence, store, blob_storage):
        return ProductCatalog(
            persistence,
            ReadThroughCache(store, PRODUCTS_FAMILY, 60),
            blob_storage,
            max_upload_bytes=1024
        )

    @pytest.fixture
    def fields(self):
        return {
            "sku": "LAMP-200",
            "name": "Table Lamp",
            "description": "",
            "price": "24.50",
            "currency": "",
            "stock": "4",
            "category": None
        }

    @pytest.fixture
    def image(self):
        return ImageUpload(filename="../table lamp.png", content_type="image/png", data=TestDataFactory.create_test_image())

    @pytest.mark.asyncio
    async def test_upload_creates_product_with_image_url(self, catalog, store, blob_storage, fields, image):
        product = await catalog.create_product_with_image(fields, image)

        assert product.price == 24.5
        assert product.stock == 4
        assert product.currency == "EUR"
        assert product.category.name == "uncategorized"
        assert product.description is None
        assert product.image_url.startswith("/uploads/")
        assert product.image_url.endswith("-table-lamp.png")

        stored = list(blob_storage.root.iterdir())
        assert len(stored) == 1
        assert stored[0].read_bytes() == image.data
        assert await store.get_version(PRODUCTS_FAMILY) == 2

    @pytest.mark.asyncio
    async def test_record_failure_removes_blob(self, catalog, persistence, store, blob_storage, fields, image):
        with patch.object(
            persistence, "create_product", new_callable=AsyncMock, side_effect=DataLayerError("insert failed")
        ):
            with pytest.raises(DataLayerError):
                await catalog.create_product_with_image(fields, image)

        assert list(blob_storage.root.iterdir()) == []
        assert await store.get_version(PRODUCTS_FAMILY) == 1

    @pytest.mark.asyncio
    async def test_cleanup_failure_keeps_original_error(self, catalog, persistence, blob_storage, fields, image):
        with patch.object(
            persistence, "create_product", new_callable=AsyncMock, side_effect=ConflictError("duplicate sku")
        ), patch.object(
            blob_storage, "delete", new_callable=AsyncMock, side_effect=StorageError("disk gone")
        ):
            with pytest.raises(ConflictError):
                await catalog.create_product_with_image(fields, image)

    @pytest.mark.asyncio
    async def test_storage_failure_skips_record(self, catalog, persistence, blob_storage, fields, image):
        with patch.object(blob_storage, "save", new_callable=AsyncMock, side_effect=StorageError("disk full")):
            with pytest.raises(StorageError):
                await catalog.create_product_with_image(fields, image)

        assert persistence.products == {}

    @pytest.mark.asyncio
    async def test_invalid_fields_rejected_before_storage(self, catalog, blob_storage, fields, image):
        fields["price"] = "-3"

        with pytest.raises(ValidationError) as exc_info:
            await catalog.create_product_with_image(fields, image)

        assert exc_info.value.details["errors"][0]["loc"] == ["price"]
        assert list(blob_storage.root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_missing_image_rejected(self, catalog, fields):
        with pytest.raises(ValidationError):
            await catalog.create_product_with_image(fields, None)

    @pytest.mark.asyncio
    async def test_non_image_rejected(self, catalog, fields):
        upload = ImageUpload(filename="notes.txt", content_type="text/plain", data=b"hello")
        with pytest.raises(ValidationError):
            await catalog.create_product_with_image(fields, upload)

    @pytest.mark.asyncio
    async def test_oversized_image_rejected(self, catalog, fields):
        upload = ImageUpload(filename="big.png", content_type="image/png", data=b"x" * 1025)
        with pytest.raises(ValidationError) as exc_info:
            await catalog.create_product_with_image(fields, upload)
        assert exc_info.value.details == {"max_bytes": 1024}
