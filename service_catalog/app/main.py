"""
Catalog service for the Storefront API.
"""

import os
import time
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, File, Form, Path, Query, Request, Response, UploadFile
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import RateLimitError
from shared.logging import set_client_context

from .auth.api_key import ApiKeyGuard
from .cache.read_through import ReadThroughCache
from .cache.redis_cache import RedisCache
from .catalog.models import (
    DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, ProductCreateRequest, ProductListQuery,
    ProductListResponse, ProductResponse, ProductUpdateRequest, SortField, SortOrder
)
from .catalog.service import ImageUpload, PRODUCTS_FAMILY, ProductCatalog
from .persistence.postgres import PostgreSQLPersistence
from .ratelimit.limiter import FixedWindowRateLimiter
from .storage.local import LocalBlobStorage

DEFAULT_PORT = 8000
RATE_LIMIT_EXEMPT_PATHS = {"/health", "/metrics"}


class CatalogService(BaseService):
    """Catalog service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        persistence: Optional[PostgreSQLPersistence] = None,
        redis_client: Optional[redis.Redis] = None,
        storage: Optional[LocalBlobStorage] = None,
    ):
        super().__init__("catalog", DEFAULT_PORT, config)

        # Initialize components
        self.persistence = persistence or PostgreSQLPersistence(self.config.postgres_dsn)
        self.cache = RedisCache(self.config.redis_url, client=redis_client)
        self.storage = storage or LocalBlobStorage(self.config.upload_dir, self.config.upload_url_prefix)
        self.listing_cache = ReadThroughCache(
            self.cache,
            PRODUCTS_FAMILY,
            self.config.cache_ttl_seconds,
            enabled=self.config.cache_enabled,
            metrics=self.metrics
        )
        self.catalog = ProductCatalog(
            self.persistence,
            self.listing_cache,
            self.storage,
            max_upload_bytes=self.config.max_upload_bytes,
            metrics=self.metrics
        )
        self.rate_limiter: Optional[FixedWindowRateLimiter] = None
        if self.config.rate_limit_enabled:
            self.rate_limiter = FixedWindowRateLimiter(self.cache.client, self.config.rate_limit_per_minute)
        self.require_api_key = ApiKeyGuard(self.config.api_key)

        self._setup_rate_limiting()
        self._setup_catalog_routes()

    def _setup_rate_limiting(self):
        """Reject clients exceeding the per-minute request budget."""

        @self.app.middleware("http")
        async def enforce_rate_limit(request: Request, call_next):
            if self.rate_limiter is None or request.url.path in RATE_LIMIT_EXEMPT_PATHS:
                return await call_next(request)

            client_id = request.client.host if request.client else "anonymous"
            set_client_context(client_id)
            status = await self.rate_limiter.check_rate_limit(client_id)

            if not status["allowed"]:
                self.metrics.increment_counter("rate_limit_hits_total", endpoint=request.url.path)
                error = RateLimitError(details={
                    "limit": status["limit"],
                    "retry_after": status["retry_after"]
                })
                return JSONResponse(
                    status_code=error.status_code,
                    content=error.to_response().model_dump(),
                    headers={"Retry-After": str(status["retry_after"])}
                )

            response = await call_next(request)
            response.headers["X-RateLimit-Limit"] = str(status["limit"])
            response.headers["X-RateLimit-Remaining"] = str(status["remaining"])
            return response

    def _setup_catalog_routes(self):
        """Set up catalog-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "catalog",
                "message": "Storefront - Catalog Service",
                "version": "1.0.0",
                "capabilities": ["listing_cache", "persistence", "uploads"]
            }

        @self.app.get("/products", response_model=ProductListResponse)
        async def list_products(
            response: Response,
            q: Optional[str] = Query(None, max_length=200, description="Search in name and description"),
            category: Optional[str] = Query(None, description="Category name"),
            min_price: Optional[float] = Query(None, ge=0, allow_inf_nan=False),
            max_price: Optional[float] = Query(None, ge=0, allow_inf_nan=False),
            sort: SortField = Query(SortField.CREATED_AT),
            order: SortOrder = Query(SortOrder.ASC),
            page: int = Query(1, ge=1),
            page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
        ):
            """List products with filtering, sorting and pagination."""
            start_time = time.perf_counter()
            query = ProductListQuery(
                q=q or None,
                category=category or None,
                min_price=min_price,
                max_price=max_price,
                sort=sort,
                order=order,
                page=page,
                page_size=page_size
            )

            lookup = await self.catalog.list_products(query)

            duration = time.perf_counter() - start_time
            self.metrics.observe_histogram(
                "product_list_duration_seconds", duration, cache_status=lookup.status.lower()
            )
            response.headers["X-Cache"] = lookup.status
            return {
                **lookup.payload,
                "cached": lookup.hit,
                "duration_ms": round(duration * 1000, 2)
            }

        @self.app.get("/products/{product_id}", response_model=ProductResponse)
        async def get_product(product_id: int = Path(..., ge=1)):
            """Get a single product."""
            return await self.catalog.get_product(product_id)

        @self.app.post(
            "/products",
            response_model=ProductResponse,
            status_code=201,
            dependencies=[Depends(self.require_api_key)]
        )
        async def create_product(request: ProductCreateRequest):
            """Create a product."""
            return await self.catalog.create_product(request)

        @self.app.post(
            "/products/upload",
            response_model=ProductResponse,
            status_code=201,
            dependencies=[Depends(self.require_api_key)]
        )
        async def upload_product(
            sku: Optional[str] = Form(None),
            name: Optional[str] = Form(None),
            description: Optional[str] = Form(None),
            price: Optional[str] = Form(None),
            currency: Optional[str] = Form(None),
            stock: Optional[str] = Form(None),
            category: Optional[str] = Form(None),
            image: Optional[UploadFile] = File(None)
        ):
            """Create a product together with its image."""
            upload = None
            if image is not None:
                # One byte over the limit is enough to reject the file.
                data = await image.read(self.config.max_upload_bytes + 1)
                upload = ImageUpload(filename=image.filename, content_type=image.content_type, data=data)

            fields = {
                "sku": sku,
                "name": name,
                "description": description,
                "price": price,
                "currency": currency,
                "stock": stock,
                "category": category
            }
            return await self.catalog.create_product_with_image(fields, upload)

        @self.app.put(
            "/products/{product_id}",
            response_model=ProductResponse,
            dependencies=[Depends(self.require_api_key)]
        )
        async def update_product(request: ProductUpdateRequest, product_id: int = Path(..., ge=1)):
            """Update a product."""
            return await self.catalog.update_product(product_id, request)

        @self.app.delete("/products/{product_id}", dependencies=[Depends(self.require_api_key)])
        async def delete_product(product_id: int = Path(..., ge=1)):
            """Delete a product."""
            await self.catalog.delete_product(product_id)
            return {"ok": True}

        @self.app.get("/stats")
        async def get_stats():
            """Get listing cache statistics."""
            return {
                "listing_cache": {
                    "family": PRODUCTS_FAMILY,
                    "enabled": self.listing_cache.enabled,
                    "ttl_seconds": self.listing_cache.ttl_seconds,
                    "version": await self.listing_cache.current_version()
                },
                "redis": await self.cache.get_cache_stats(),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

        self.app.mount(
            self.config.upload_url_prefix,
            StaticFiles(directory=self.config.upload_dir, check_dir=False),
            name="uploads"
        )

    async def _check_dependencies(self):
        """Check catalog service dependencies."""
        return {
            "redis": "ok" if await self.cache.health_check() else "error",
            "postgres": "ok" if await self.persistence.health_check() else "error"
        }

    async def start(self):
        """Start catalog service components."""
        self.storage.start()
        await self.cache.start()
        await self.persistence.start()

        self.logger.info(
            "Catalog service started",
            cache_enabled=self.config.cache_enabled,
            cache_ttl_seconds=self.config.cache_ttl_seconds
        )

    async def stop(self):
        """Stop catalog service components."""
        await self.persistence.stop()
        await self.cache.stop()

        self.logger.info("Catalog service stopped")


def create_app():
    """Create catalog service application."""
    service = CatalogService(get_config("catalog", int(os.getenv("CATALOG_PORT", DEFAULT_PORT))))
    return service.app


def main():
    service = CatalogService(get_config("catalog", int(os.getenv("CATALOG_PORT", DEFAULT_PORT))))
    service.run()


if __name__ == "__main__":
    main()
