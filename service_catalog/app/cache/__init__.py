"""
Cache package for the Catalog Service.

Provides version-tagged query-result caching for product listings: key
derivation, Redis-backed version counters and entries, and the read-through
orchestrator used by the listing endpoint.
"""
