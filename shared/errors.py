"""
Shared error handling for the Storefront Catalog API.
"""

from typing import Dict, Any, Iterable, List, Optional

from opentelemetry import trace
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class CatalogException(Exception):
    """Base exception for catalog services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(CatalogException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class ValidationError(CatalogException):
    """Validation-related errors."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(CatalogException):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", f"{resource} {identifier} not found", details)


class ConflictError(CatalogException):
    """Write conflicts with existing data (e.g. a unique key)."""

    status_code = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class RateLimitError(CatalogException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)


class DataLayerError(CatalogException):
    """The relational store failed to execute a query."""

    status_code = 500

    def __init__(self, message: str = "Data layer error", details: Optional[Dict[str, Any]] = None):
        super().__init__("DATA_LAYER_ERROR", message, details)


class StorageError(CatalogException):
    """Blob storage failed to persist or remove a file."""

    status_code = 500

    def __init__(self, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", message, details)


class CacheError(CatalogException):
    """Cache-layer failure. Never surfaces to HTTP callers."""

    status_code = 503


class CacheStoreUnavailable(CacheError):
    """The key-value store could not be reached."""

    def __init__(self, message: str = "Cache store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_STORE_UNAVAILABLE", message, details)


class CacheSerializationError(CacheError):
    """A cached payload could not be encoded or decoded."""

    def __init__(self, message: str = "Cache payload serialization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_SERIALIZATION_ERROR", message, details)


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Reduce pydantic/FastAPI error entries to JSON-safe location/message pairs."""
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", "")
        }
        for error in errors
    ]
