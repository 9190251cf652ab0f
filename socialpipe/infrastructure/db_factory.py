"""
Backend connection factories for socialpipe.

Wires `ResilientConnector` to the two backends the pipeline talks to:

- the query backend, a PostgreSQL server reached through psycopg, retried on
  `OperationalError`/`InterfaceError` (3 attempts, 1s apart by default);
- the storage backend, opened from a `file://` URI, retried on `OSError`
  (5 attempts, 3s apart by default).

Attempt ceilings and delays come from settings unless overridden.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

import psycopg
from psycopg import Connection

from socialpipe.config import Settings, build_dsn, get_settings
from socialpipe.infrastructure.connector import BackendTarget, ResilientConnector, TargetKind
from socialpipe.infrastructure.storage import StorageBackend, open_storage

QUERY_RETRYABLE_ERRORS = (psycopg.OperationalError, psycopg.InterfaceError, OSError)
STORAGE_RETRYABLE_ERRORS = (OSError,)


def query_target(settings: Optional[Settings] = None, dsn_override: Optional[str] = None) -> BackendTarget:
    """Describe the query backend from settings."""
    settings = settings or get_settings()
    return BackendTarget(
        name=f"postgres@{settings.db_host}:{settings.db_port}/{settings.db_name}",
        kind=TargetKind.QUERY,
        uri=dsn_override or build_dsn(settings),
        max_attempts=settings.query_max_attempts,
        retry_delay=settings.query_retry_delay,
        retry_on=QUERY_RETRYABLE_ERRORS,
    )


def storage_target(settings: Optional[Settings] = None, uri_override: Optional[str] = None) -> BackendTarget:
    """Describe the storage backend from settings."""
    settings = settings or get_settings()
    uri = uri_override or settings.storage_uri
    return BackendTarget(
        name=f"storage:{uri}",
        kind=TargetKind.STORAGE,
        uri=uri,
        max_attempts=settings.storage_max_attempts,
        retry_delay=settings.storage_retry_delay,
        retry_on=STORAGE_RETRYABLE_ERRORS,
    )


def open_query_connection(target: BackendTarget, connect_timeout: Optional[int] = None) -> Connection:
    """
    Open a dedicated psycopg connection for one operation.

    Raises
    ------
    psycopg.OperationalError
        If the server is unreachable; the connector decides whether to retry.
    """
    timeout = connect_timeout or get_settings().query_connect_timeout
    return psycopg.connect(target.uri, connect_timeout=timeout)


def _open_storage(target: BackendTarget) -> StorageBackend:
    return open_storage(target.uri)


def query_connector(
    settings: Optional[Settings] = None,
    dsn_override: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> ResilientConnector:
    """Connector for the query backend."""
    settings = settings or get_settings()
    return ResilientConnector(
        query_target(settings, dsn_override),
        opener=lambda target: open_query_connection(target, settings.query_connect_timeout),
        cancel_event=cancel_event,
        sleep=sleep,
    )


def storage_connector(
    settings: Optional[Settings] = None,
    uri_override: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> ResilientConnector:
    """Connector for the storage backend."""
    return ResilientConnector(
        storage_target(settings, uri_override),
        opener=_open_storage,
        cancel_event=cancel_event,
        sleep=sleep,
    )


__all__ = [
    "QUERY_RETRYABLE_ERRORS",
    "STORAGE_RETRYABLE_ERRORS",
    "query_target",
    "storage_target",
    "open_query_connection",
    "query_connector",
    "storage_connector",
]
