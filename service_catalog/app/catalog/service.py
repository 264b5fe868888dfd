"""
Product catalog application service.

Coordinates the relational store, the listing cache and blob storage.
Every successful mutation bumps the listing cache version after the
write has committed, so readers never observe a stale page once the
mutation response has been sent.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from shared.errors import StorageError, ValidationError, format_validation_errors
from shared.logging import get_logger
from shared.tracing import trace_operation
from ..cache.read_through import CacheLookup, ReadThroughCache
from ..persistence.postgres import PostgreSQLPersistence
from ..storage.local import LocalBlobStorage, StoredBlob
from .models import (
    ProductCreateRequest, ProductListQuery, ProductResponse, ProductUpdateRequest
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


PRODUCTS_FAMILY = "products"


@dataclass
class ImageUpload:
    """An image file received with a multipart product upload."""
    filename: Optional[str]
    content_type: Optional[str]
    data: bytes


class ProductCatalog:
    """Product listing, lookup and mutation use cases."""

    def __init__(
        self,
        persistence: PostgreSQLPersistence,
        listing_cache: ReadThroughCache,
        storage: LocalBlobStorage,
        *,
        max_upload_bytes: int,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.persistence = persistence
        self.listing_cache = listing_cache
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes
        self.metrics = metrics
        self.logger = get_logger("catalog.products")

    async def list_products(self, query: ProductListQuery) -> CacheLookup:
        """List one page of products, served from the cache when possible."""

        async def load() -> Dict[str, Any]:
            items, total = await self.persistence.list_with_count(query)
            return {
                "items": [item.model_dump(mode="json") for item in items],
                "page": query.page,
                "page_size": query.limit,
                "total": total,
                "total_pages": math.ceil(total / query.limit) if total else 0,
            }

        return await self.listing_cache.get_or_load(query.to_descriptor(), load)

    async def get_product(self, product_id: int) -> ProductResponse:
        return await self.persistence.get_product(product_id)

    async def create_product(self, request: ProductCreateRequest) -> ProductResponse:
        product = await self.persistence.create_product(request)
        await self._after_mutation("create", product.id)
        return product

    async def update_product(self, product_id: int, request: ProductUpdateRequest) -> ProductResponse:
        product = await self.persistence.update_product(product_id, request)
        await self._after_mutation("update", product_id)
        return product

    async def delete_product(self, product_id: int) -> None:
        await self.persistence.delete_product(product_id)
        await self._after_mutation("delete", product_id)

    async def create_product_with_image(
        self,
        fields: Dict[str, Any],
        image: Optional[ImageUpload],
    ) -> ProductResponse:
        """Create a product from multipart form fields plus an image file.

        The image is stored first; if the product row cannot be written the
        stored file is removed again before the error is re-raised.
        """
        request = self._parse_upload_fields(fields)
        self._validate_image(image)

        with trace_operation("catalog.upload.store_blob", filename=image.filename, size=len(image.data)):
            blob = await self.storage.save(image.filename, image.data)

        try:
            with trace_operation("catalog.upload.create_record", sku=request.sku):
                product = await self.persistence.create_product(
                    request.model_copy(update={"image_url": blob.public_url})
                )
        except Exception:
            await self._discard_blob(blob)
            raise

        await self._after_mutation("create", product.id)
        return product

    def _parse_upload_fields(self, fields: Dict[str, Any]) -> ProductCreateRequest:
        # Blank form inputs count as absent so model defaults apply.
        provided = {key: value for key, value in fields.items() if value not in (None, "")}
        try:
            return ProductCreateRequest.model_validate(provided)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid product fields",
                {"errors": format_validation_errors(e.errors())}
            ) from e

    def _validate_image(self, image: Optional[ImageUpload]):
        if image is None or not image.filename:
            raise ValidationError("Image file is required")
        if not (image.content_type or "").startswith("image/"):
            raise ValidationError(
                "Uploaded file must be an image",
                {"content_type": image.content_type}
            )
        if not image.data:
            raise ValidationError("Uploaded file is empty")
        if len(image.data) > self.max_upload_bytes:
            raise ValidationError(
                "Uploaded file is too large",
                {"max_bytes": self.max_upload_bytes}
            )

    async def _discard_blob(self, blob: StoredBlob):
        try:
            await self.storage.delete(blob)
        except StorageError as e:
            # The record failure is the error the caller sees.
            self.logger.error("Failed to remove orphaned upload", name=blob.name, error=str(e))

    async def _after_mutation(self, operation: str, product_id: int):
        version = await self.listing_cache.invalidate()
        if self.metrics:
            self.metrics.increment_counter("product_mutations_total", operation=operation)
        self.logger.info(
            "Product mutation committed",
            operation=operation,
            product_id=product_id,
            cache_version=version
        )
