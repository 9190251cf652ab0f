"""
Pytest configuration for socialpipe.

Provides fixtures for:
- Resetting process-wide connector state between tests
- Settings pointed at a temporary storage root
- Record factories with controlled timestamps
- Database connection management and a scratch schema for integration tests
"""

from __future__ import annotations

import os
from typing import Callable, Generator

import psycopg
import pytest
from psycopg import sql

from socialpipe.config import Settings, get_settings
from socialpipe.domain.models import Post
from socialpipe.infrastructure.connector import connector_stats, reset_startup_latches

# 2024-08-01 13:00:00 UTC
HOUR_13 = 1722517200
HOUR_14 = HOUR_13 + 3600

INTEGRATION_SCHEMA = "socialpipe_test"


@pytest.fixture(autouse=True)
def _reset_connector_state() -> Generator[None, None, None]:
    """Counters and startup latches are process-wide; isolate every test."""
    connector_stats().reset()
    reset_startup_latches()
    get_settings.cache_clear()
    yield
    connector_stats().reset()
    reset_startup_latches()
    get_settings.cache_clear()


@pytest.fixture
def storage_settings(tmp_path) -> Settings:
    """Settings with a temporary storage root and no retry delay."""
    return Settings(
        storage_uri=f"file://{tmp_path / 'store'}",
        storage_max_attempts=2,
        storage_retry_delay=0.0,
        base_path="social",
        log_level="DEBUG",
    )


@pytest.fixture
def make_post() -> Callable[..., Post]:
    """Factory for valid posts; override any field by keyword."""
    counter = {"n": 0}

    def _make(**overrides) -> Post:
        counter["n"] += 1
        fields = {
            "id": f"post_{counter['n']:04d}",
            "owner_id": "user_0001",
            "display_name": "ada_byte",
            "body": "Working on some exciting tech projects #data",
            "timestamp": HOUR_13,
            "hashtags": ["#data", "#tech"],
            "mentions": ["@loki"],
            "like_count": 10,
            "retweet_count": 5,
            "reply_count": 1,
            "is_celebrity": False,
            "celebrity_category": "other",
        }
        fields.update(overrides)
        return Post.create(**fields)

    return _make


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "socialpipe"),
        table_schema=INTEGRATION_SCHEMA,
        query_retry_delay=0.1,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def clean_schema(db_connection: psycopg.Connection) -> Generator[str, None, None]:
    """
    Drop the scratch schema before and after each test function.

    Startup latches are reset by the autouse fixture, so the table sink
    recreates the schema and parent tables on first write.
    """
    drop = sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(sql.Identifier(INTEGRATION_SCHEMA))
    db_connection.execute(drop)
    yield INTEGRATION_SCHEMA
    db_connection.execute(drop)
