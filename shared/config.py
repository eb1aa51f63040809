"""
Shared configuration management for the coffee business rules service.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # PostgreSQL
    postgres_dsn: str = Field(default="postgres://localhost:5432/coffee_shop")
    db_pool_min_size: int = Field(default=2, ge=1)
    db_pool_max_size: int = Field(default=10, ge=1)
    db_command_timeout: float = Field(default=30.0, gt=0)
    create_schema: bool = Field(default=True)

    # Rule configuration cache
    cache_ttl_seconds: float = Field(default=60.0, gt=0)
    warm_cache_on_startup: bool = Field(default=True)

    # Instrumentation
    slow_operation_threshold_ms: float = Field(default=100.0, gt=0)

    # Pricing
    default_combination_strategy: str = Field(default="best_price")


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
