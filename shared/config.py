"""
Shared configuration management for the Storefront Catalog API.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CATALOG_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgresql://localhost:5432/catalog")

    # Security
    api_key: str = Field(default="dev-admin-key")
    security_headers_enabled: bool = Field(default=True)

    # Listing cache
    cache_enabled: bool = Field(default=True)
    cache_ttl_seconds: int = Field(default=60, gt=0)

    # Uploads
    upload_dir: str = Field(default="uploads")
    upload_url_prefix: str = Field(default="/uploads")
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, gt=0)

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_per_minute: int = Field(default=500, gt=0)

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: Optional[str] = Field(default="http://localhost:4317")
    enable_console_tracing: bool = Field(default=False)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
