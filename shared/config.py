"""
Shared configuration management for the render cache store.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class CacheConfig(BaseConfig):
    """Cache service configuration."""

    service_name: str = "cache"
    host: str = "0.0.0.0"
    port: int = Field(default=8020)

    # Storage backend: filesystem | object_store | memory
    backend: str = Field(default="filesystem")
    dir: str = Field(default=".cache")
    namespace: str = Field(default="cache")

    # Remote object storage
    bucket: Optional[str] = Field(default=None)
    object_store_endpoint: str = Field(default="localhost:9000")
    object_store_access_key: Optional[str] = Field(default=None)
    object_store_secret_key: Optional[str] = Field(default=None)
    object_store_secure: bool = Field(default=False)

    # Edge cache invalidation
    edge_purge_endpoint: Optional[str] = Field(default=None)
    edge_purge_timeout: float = Field(default=10.0)

    # Build identity
    build_id: Optional[str] = Field(default=None)
    build_dir: Optional[str] = Field(default=None)
    build_phase: bool = Field(default=False)
    prerender_manifest: Optional[str] = Field(default=None)


def get_config(**overrides) -> CacheConfig:
    """Get configuration for the cache service."""
    return CacheConfig(**overrides)
