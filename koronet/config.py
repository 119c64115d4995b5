"""
Configuration management using Pydantic Settings.
Challenge: Per-dependency connection config (DB, Redis) read once from env, immutable after load.
"""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """Application settings loaded from environment. Frozen after startup."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # App / HTTP
    app_name: str = "Koronet Status Service"
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("NODE_ENV", "ENVIRONMENT", "environment"),
    )
    log_level: str = "INFO"

    # PostgreSQL
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "postgres"  # container network name, not localhost
    db_port: int = 5432
    db_name: str = "koronet_db"
    # Full SQLAlchemy URL; wins over the DB_* parts when set
    database_url: str | None = None
    db_pool_size: int = 10
    db_idle_timeout: float = 30.0
    db_connect_timeout: float = 2.0

    # Redis
    redis_url: str | None = None
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_connect_timeout: float = 2.0
    redis_reconnect_attempts: int = 10
    cache_heartbeat_interval: float = 5.0

    # Startup retry (both connectors)
    connect_max_retries: int = 5
    connect_retry_delay: float = 5.0

    def sqlalchemy_url(self) -> URL | str:
        """asyncpg URL built from DB_* parts unless DATABASE_URL is given."""
        if self.database_url:
            return self.database_url
        return URL.create(
            "postgresql+asyncpg",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )

    def engine_options(self) -> dict:
        """Pool options for create_async_engine (PostgreSQL only)."""
        return {
            "pool_size": self.db_pool_size,
            "pool_recycle": self.db_idle_timeout,
            "pool_pre_ping": True,
            "connect_args": {"timeout": self.db_connect_timeout},
        }

    def cache_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://{self.redis_host}:{self.redis_port}"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance. Avoids re-reading env on every request (performance)."""
    return Settings()
