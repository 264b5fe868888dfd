"""
Catalog Service package for the Storefront API.

Serves the product catalog: listings with filtering, sorting and
pagination, product lookups, and admin mutations. It provides:

- app.main: API surface for products, uploads, stats and health.
- app.cache: Versioned read-through cache for product listings.
- app.catalog: Product models and the catalog use cases.
- app.persistence: PostgreSQL storage for products and categories.
- app.storage: Local filesystem storage for product images.
- app.ratelimit: Per-client fixed-window rate limiting.
- app.auth: Static API key guard for mutating endpoints.

Guidelines:
- Listing pages are cached per query; any committed mutation bumps the
  listing version instead of deleting entries.
- A cache outage never fails a request; the service degrades to uncached reads.
"""
