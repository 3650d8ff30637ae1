"""
Shared configuration management for the Access Layer authorization service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Log level")

    # Data caches
    data_cache_max_age: float = Field(default=10.0, ge=0, description="Max age in seconds of cached store/IdP collections")
    data_cache_max_entries: int = Field(default=100, ge=1, description="Max keys held by each data cache")
    connection_cache_max_age: float = Field(default=600.0, ge=0, description="Max age in seconds of single connection lookups")
    mapping_lookup_concurrency: int = Field(default=10, ge=1, description="Concurrent connection lookups when describing mappings")

    # Identity provider
    idp_url: str = Field(default="http://localhost:8080", description="Identity provider management API base URL")
    idp_api_token: str = Field(default="", description="Bearer token for the management API")
    idp_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for management API calls")

    # Group/application store
    data_file: Optional[str] = Field(default=None, description="JSON document seeding the in-memory store")

    # Observability
    enable_metrics_server: bool = Field(default=False, description="Expose prometheus metrics on a side port")
    metrics_port: int = Field(default=9090, description="Prometheus side port")


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
