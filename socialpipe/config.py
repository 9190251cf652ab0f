"""
Configuration settings for socialpipe.

Uses Pydantic Settings to load environment variables for the storage and query
backends, retry budgets, logging, and generation defaults.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Query backend (PostgreSQL)
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("socialpipe", alias="DB_NAME")
    query_dsn: Optional[str] = Field(None, alias="QUERY_DSN")
    query_max_attempts: int = Field(3, alias="QUERY_MAX_ATTEMPTS", ge=1)
    query_retry_delay: float = Field(1.0, alias="QUERY_RETRY_DELAY", ge=0)
    query_connect_timeout: int = Field(5, alias="QUERY_CONNECT_TIMEOUT", ge=1)
    table_schema: str = Field("public", alias="TABLE_SCHEMA")

    # Storage backend
    storage_uri: str = Field("file://./data", alias="STORAGE_URI")
    storage_max_attempts: int = Field(5, alias="STORAGE_MAX_ATTEMPTS", ge=1)
    storage_retry_delay: float = Field(3.0, alias="STORAGE_RETRY_DELAY", ge=0)
    base_path: str = Field("social", alias="BASE_PATH")

    # Writer
    write_concurrency: int = Field(1, alias="WRITE_CONCURRENCY", ge=1)

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Generation defaults
    default_record_count: int = Field(100, alias="DEFAULT_RECORD_COUNT", ge=0)
    default_span_hours: int = Field(1, alias="DEFAULT_SPAN_HOURS", ge=1)

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
    """
    return Settings()


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose the query backend DSN, honouring an explicit QUERY_DSN override."""
    settings = settings or get_settings()
    if settings.query_dsn:
        return settings.query_dsn
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


__all__ = ["Settings", "get_settings", "build_dsn"]
