"""
Application settings using Pydantic.

Provides environment-based configuration loading with STACKDOCK_ prefix.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "postgresql+psycopg://localhost/stackdock"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Debug
    debug: bool = False
    log_level: str = "INFO"

    # Redis (shared rate limits and locks across workers)
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10

    # HTTP client settings
    http_timeout: int = 30
    http_max_retries: int = 3
    http_retry_backoff_factor: float = 0.5

    # Provisioning engine
    reconcile_policy: Literal["vendor_wins", "last_writer_wins"] = "vendor_wins"
    plan_execution_mode: Literal["sequential", "parallel"] = "sequential"
    max_parallel_executions: int = 4
    rate_limit_backend: Literal["memory", "redis"] = "memory"

    # DigitalOcean dock adapter
    digitalocean_base_url: str = "https://api.digitalocean.com/v2"
    digitalocean_token: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "STACKDOCK_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
