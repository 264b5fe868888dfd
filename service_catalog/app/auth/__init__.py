"""
Authentication for the Catalog Service.

Mutating product endpoints are guarded by a static API key sent in the
``X-API-Key`` header.
"""
