"""
Storage package for the Catalog Service.

Persists uploaded product images on the local filesystem and removes them
again when the product record that references them cannot be created.
"""
