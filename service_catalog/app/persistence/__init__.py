"""
Persistence package for the Catalog Service.

PostgreSQL (asyncpg) storage for products and categories.
"""
