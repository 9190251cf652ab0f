"""
socialpipe - partitioned batch ingestion and resilient queries for social records.

This package generates validated user, post and event records, groups them by UTC
hour, and writes each hour as its own partition:

- JSON-lines files under `year=/month=/day=/hour=` directories of a storage backend
- Child tables of a range-partitioned PostgreSQL parent

Every backend connection goes through a bounded, cancellable retry loop. Named
analytical queries (top-K, hashtag fan-out, grouped engagement statistics) are built
from declarative specs into parameterized SQL.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from socialpipe.config import Settings, get_settings
from socialpipe.domain import GenerationParams, RecordGenerator, RecordKind, build_record
from socialpipe.errors import (
    BackendUnavailable,
    Cancelled,
    InvalidArgument,
    PartialWriteFailure,
    PipelineError,
    QuerySpecError,
    ValidationError,
)
from socialpipe.infrastructure import ResilientConnector
from socialpipe.partitioning import PartitionKey, key_of, partition
from socialpipe.pipeline import run_analysis, run_query, run_write, write_records
from socialpipe.query import QueryBuilder, QueryExecutor, QuerySpec
from socialpipe.utils.logging import configure_logging, get_logger
from socialpipe.writer import PartitionedWriter, WriteReport

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "GenerationParams",
    "RecordGenerator",
    "RecordKind",
    "build_record",
    # Errors
    "PipelineError",
    "InvalidArgument",
    "ValidationError",
    "BackendUnavailable",
    "Cancelled",
    "QuerySpecError",
    "PartialWriteFailure",
    # Partitioning and writes
    "PartitionKey",
    "key_of",
    "partition",
    "PartitionedWriter",
    "WriteReport",
    "ResilientConnector",
    # Queries
    "QueryBuilder",
    "QueryExecutor",
    "QuerySpec",
    "run_query",
    "run_analysis",
    "run_write",
    "write_records",
    # Logging
    "configure_logging",
    "get_logger",
]
