"""
Configuration settings for the coachstore data layer.

Uses Pydantic Settings to load environment variables for the document backend,
cache sizing, retry policy, migrations, seeding and logging. Values are
validated at startup so misconfiguration fails fast instead of surfacing as
odd runtime behavior.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Backend
    store_backend: Literal["memory", "postgres"] = Field("memory", alias="STORE_BACKEND")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("coachstore", alias="DB_NAME")
    db_documents_table: str = Field("documents", alias="DB_DOCUMENTS_TABLE", pattern=r"^[a-z_][a-z0-9_]*$")
    db_notify_channel: str = Field("coachstore_changes", alias="DB_NOTIFY_CHANNEL", pattern=r"^[a-z_][a-z0-9_]*$")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE", ge=1)
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE", ge=1)

    # Cache
    cache_max_size: int = Field(1000, alias="CACHE_MAX_SIZE", ge=1)
    cache_default_ttl_seconds: float = Field(300.0, alias="CACHE_DEFAULT_TTL_SECONDS", gt=0)

    # Retry (total tries, including the first one)
    retry_max_attempts: int = Field(3, alias="RETRY_MAX_ATTEMPTS", ge=1)
    retry_base_delay_ms: int = Field(1000, alias="RETRY_BASE_DELAY_MS", ge=0)
    retry_max_delay_ms: int = Field(10_000, alias="RETRY_MAX_DELAY_MS", ge=0)
    retry_backoff_multiplier: float = Field(2.0, alias="RETRY_BACKOFF_MULTIPLIER", ge=1.0)

    # Batch writes
    batch_max_operations: int = Field(500, alias="BATCH_MAX_OPERATIONS", ge=1)

    # Migrations
    migration_compensate_on_failure: bool = Field(False, alias="MIGRATION_COMPENSATE_ON_FAILURE")

    # Seeding
    seed_admin_user_id: str = Field("system", alias="SEED_ADMIN_USER_ID")
    seed_clear_page_size: int = Field(500, alias="SEED_CLEAR_PAGE_SIZE", ge=1)

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.

    Tests that change the environment should call `get_settings.cache_clear()`.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
