"""
Cache key derivation for versioned query-result caching.

A listing request is reduced to a Query Descriptor (a flat mapping of
filter/sort/pagination parameters). The descriptor is normalized into a
canonical JSON string, hashed, and composed with the current version of its
resource family:

    <family>:v<version>:<sha1 hex>

Bumping the family version changes every key of that family at once, which is
how mutations invalidate cached listings without deleting anything.
"""

import hashlib
import json
from typing import Any, Mapping


def normalize_query(query: Mapping[str, Any]) -> str:
    """Serialize a query descriptor into a canonical string.

    Keys are sorted lexicographically and keys whose value is ``None`` are
    omitted, so ``{"a": 1, "b": None}`` and ``{"a": 1}`` normalize alike.
    """
    ordered = {key: query[key] for key in sorted(query) if query[key] is not None}
    return json.dumps(ordered, separators=(",", ":"), ensure_ascii=False)


def fingerprint(canonical: str) -> str:
    """Return the 160-bit SHA-1 hex digest of a canonical query string."""
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


def build_cache_key(family: str, version: int, digest: str) -> str:
    return f"{family}:v{version}:{digest}"


def version_key(family: str) -> str:
    return f"cache:{family}:version"


def cache_key_for(family: str, version: int, query: Mapping[str, Any]) -> str:
    """Derive the cache key of ``query`` under ``version`` of ``family``."""
    return build_cache_key(family, version, fingerprint(normalize_query(query)))
