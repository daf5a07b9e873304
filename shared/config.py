"""
Shared configuration management for the Performance Optimization service.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PERF_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Cache
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    cache_max_entries: int = Field(default=1000, ge=0)
    cache_check_period_seconds: float = Field(default=600.0, ge=0)

    # Upstream simulation
    upstream_timeout_seconds: float = Field(default=5.0, gt=0)
    upstream_delay_scale: float = Field(default=1.0, ge=0)
    upstream_failures: str = Field(default="")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_max_requests: int = Field(default=100, gt=0)
    rate_limit_window_seconds: float = Field(default=900.0, gt=0)
    slow_down_after: int = Field(default=50, ge=0)
    slow_down_delay_ms: int = Field(default=500, ge=0)

    @property
    def failing_resources(self) -> List[str]:
        """Resource names whose simulators are configured to fail."""
        return [name.strip() for name in self.upstream_failures.split(",") if name.strip()]

    @property
    def max_entries(self) -> Optional[int]:
        """Cache bound, or None when unbounded."""
        return self.cache_max_entries or None


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 3008
    host: str = "0.0.0.0"


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
