"""
Shared configuration management for the Members Access Layer.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ACCESS_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Storage
    storage_backend: str = Field(default="postgres", description="postgres or memory")
    postgres_dsn: str = Field(default="postgres://localhost:5432/access")
    pool_min_size: int = Field(default=2)
    pool_max_size: int = Field(default=10)
    store_timeout_seconds: float = Field(default=5.0)
    store_connect_attempts: int = Field(default=3)
    seed_sample_catalog: bool = Field(default=True)

    # Entitlement policy
    approved_status: str = Field(default="approved")
    owned_category: str = Field(default="meus_produtos")

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4318")
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
