"""
Static API key guard for mutating endpoints.
"""

import secrets
from typing import Optional

from fastapi import Security
from fastapi.security import APIKeyHeader

from shared.logging import get_logger
from shared.errors import AuthenticationError

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class ApiKeyGuard:
    """FastAPI dependency rejecting requests without the configured key."""

    def __init__(self, api_key: str):
        self.api_key = api_key
        self.logger = get_logger("catalog.auth.api_key")

    async def __call__(self, provided: Optional[str] = Security(api_key_header)) -> str:
        if not provided or not secrets.compare_digest(provided.encode(), self.api_key.encode()):
            self.logger.warning("Rejected request with invalid API key", key_present=bool(provided))
            raise AuthenticationError("Invalid or missing API key")
        return provided
