"""Rate limiting for the Catalog Service."""
