"""
Application configuration module using Pydantic Settings.

This module provides centralized configuration for the metrics engine,
including cache policy defaults, warming behavior, Redis connection
settings and the relational query source connection.
"""

from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    Settings are loaded from environment variables with fallback to .env file.
    Every engine component accepts explicit overrides, so this instance is
    only the default source of tunables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level emitted by structlog",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON instead of the console renderer",
    )

    # Request defaults
    default_timezone: str = Field(
        default="UTC",
        description="Timezone used when a request does not provide one",
    )
    default_range: int | str = Field(
        default=30,
        description="Range token used when a request does not provide one",
    )

    # Metric cache configuration
    metric_cache_ttl: int = Field(
        default=3600,
        ge=1,
        description="Fallback TTL in seconds for warming metrics without a cache policy",
    )
    metric_cache_prefix: str = Field(
        default="metric",
        min_length=1,
        description="Prefix for every composed metric cache key",
    )
    metric_cache_timezones: list[str] = Field(
        default=["UTC"],
        min_length=1,
        description="Timezones used to build default cache warming parameter sets",
    )
    metric_cache_max_entries: int = Field(
        default=1000,
        ge=10,
        description="Maximum entries held by the in-memory cache store",
    )
    metric_cache_single_flight: bool = Field(
        default=True,
        description="Coalesce concurrent identical cache misses into one computation",
    )
    cache_warm_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Worker pool size for cache warming",
    )
    cache_low_hit_ratio: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Hit ratio below which performance analysis flags the cache",
    )
    cache_high_memory_bytes: int = Field(
        default=100 * 1024 * 1024,
        ge=0,
        description="Metric cache memory above which performance analysis flags the cache",
    )

    # Redis Configuration
    enable_redis_cache: bool = Field(
        default=False,
        description="Use Redis as the metric cache store instead of process memory",
    )
    redis_host: str = Field(
        default="localhost",
        description="Redis server hostname",
    )
    redis_port: int = Field(
        default=6379,
        ge=1,
        le=65535,
        description="Redis server port",
    )
    redis_db: int = Field(
        default=0,
        ge=0,
        description="Redis logical database",
    )

    # Relational query source
    database_url: str = Field(
        default="sqlite+aiosqlite:///:memory:",
        description="Async SQLAlchemy URL for the relational query source",
    )
    db_echo: bool = Field(
        default=False,
        description="Echo SQL statements to logs (useful for debugging)",
    )

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, v: str) -> str:
        """Ensure the default timezone is a known IANA zone."""
        _ensure_timezone(v)
        return v

    @field_validator("metric_cache_timezones")
    @classmethod
    def validate_cache_timezones(cls, v: list[str]) -> list[str]:
        """Ensure every warming timezone is a known IANA zone."""
        for name in v:
            _ensure_timezone(name)
        return v

    @field_validator("default_range")
    @classmethod
    def validate_default_range(cls, v: int | str) -> int | str:
        """Ensure the default range is itself a valid range token."""
        from dashmetrics.exceptions import InvalidRangeError
        from dashmetrics.timeframes.range_resolver import RangeToken

        try:
            RangeToken.parse(v)
        except InvalidRangeError as e:
            raise ValueError(e.message) from e
        return v

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """
        Validate that database URL uses an async-compatible driver.

        The SQLAlchemy query source runs on AsyncSession only.
        """
        if isinstance(v, str):
            async_drivers = ("+aiosqlite", "+asyncpg", "+psycopg", "+aiomysql", "+asyncmy", "+aioodbc")
            if not any(driver in v for driver in async_drivers):
                raise ValueError(
                    "DATABASE_URL must use an async driver (e.g. sqlite+aiosqlite:// or postgresql+asyncpg://)"
                )
        return v


def _ensure_timezone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


# Global settings instance
settings = Settings()
