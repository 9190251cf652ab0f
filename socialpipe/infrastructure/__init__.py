"""
Infrastructure package for socialpipe.

Centralizes backend connectivity: the resilient connector, the storage backend,
and factories that bind them to settings. Keep this layer focused on I/O and
resource management, decoupled from partitioning and query-building logic.
"""

from socialpipe.infrastructure.connector import (
    BackendTarget,
    ConnectionHandle,
    ConnectorState,
    ResilientConnector,
    TargetKind,
    connector_stats,
)
from socialpipe.infrastructure.db_factory import (
    open_query_connection,
    query_connector,
    query_target,
    storage_connector,
    storage_target,
)
from socialpipe.infrastructure.storage import LocalStorage, StorageBackend, StorageEntry, open_storage

__all__ = [
    "BackendTarget",
    "ConnectionHandle",
    "ConnectorState",
    "ResilientConnector",
    "TargetKind",
    "connector_stats",
    "open_query_connection",
    "query_connector",
    "query_target",
    "storage_connector",
    "storage_target",
    "LocalStorage",
    "StorageBackend",
    "StorageEntry",
    "open_storage",
]
