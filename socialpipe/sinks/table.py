"""
Partitioned-table sink for the PostgreSQL query backend.

Each record kind has a parent table declared `PARTITION BY RANGE (year, month, day,
hour)` in the schema named by `base_path`; each hour gets a child table created on
first write. Rows are streamed with COPY inside one transaction, so a batch is either
fully visible or not at all.
"""

from __future__ import annotations

from typing import Mapping, Optional

import psycopg
from psycopg import sql

from socialpipe.domain.models import RecordKind
from socialpipe.errors import InvalidArgument
from socialpipe.infrastructure.connector import ConnectionHandle
from socialpipe.partitioning import Batch, PartitionKey
from socialpipe.query.schema import TABLE_BY_KIND, TableSchema
from socialpipe.sinks.abstract import AbstractPartitionSink, PartitionTarget
from socialpipe.utils.logging import get_logger

log = get_logger(__name__)

# Raised when a concurrent writer created the same object first.
DDL_RACE_ERRORS = (
    psycopg.errors.DuplicateTable,
    psycopg.errors.DuplicateSchema,
    psycopg.errors.DuplicateObject,
    psycopg.errors.UniqueViolation,
)


def run_ddl(conn: psycopg.Connection, statement: sql.Composable) -> bool:
    """
    Execute an idempotent DDL statement in its own transaction.

    Returns False if a concurrent creator won the race.
    """
    try:
        with conn.transaction():
            conn.execute(statement)
    except DDL_RACE_ERRORS as exc:
        log.info("DDL raced with a concurrent creator", extra={"error": type(exc).__name__})
        return False
    return True


class TableSink(AbstractPartitionSink):
    """
    Write partitions into hourly child tables.

    Parameters
    ----------
    tables : Mapping[RecordKind, TableSchema] | None
        Table definitions per record kind.
    """

    name: str = "table"
    description: str = "Rows COPY'd into hourly child tables of a range-partitioned parent."

    def __init__(self, tables: Optional[Mapping[RecordKind, TableSchema]] = None) -> None:
        self._tables = tables or TABLE_BY_KIND

    def _schema(self, kind: RecordKind) -> TableSchema:
        schema = self._tables.get(kind)
        if schema is None:
            raise InvalidArgument(f"No table defined for record kind '{kind.value}'")
        return schema

    def target(self, kind: RecordKind, key: PartitionKey, base_path: str) -> PartitionTarget:
        return PartitionTarget(
            kind=kind,
            key=key,
            base_path=base_path,
            location=f"{base_path}.{self._schema(kind).partition_name(key)}",
        )

    def bootstrap(self, handle: ConnectionHandle, kind: RecordKind, base_path: str) -> None:
        conn = handle.resource
        run_ddl(conn, sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(base_path)))
        run_ddl(conn, self._schema(kind).create_parent_sql(base_path))

    def ensure_container(self, handle: ConnectionHandle, target: PartitionTarget) -> None:
        schema = self._schema(target.kind)
        run_ddl(handle.resource, schema.create_partition_sql(target.base_path, target.key))

    def write_batch(self, handle: ConnectionHandle, target: PartitionTarget, batch: Batch) -> str:
        conn = handle.resource
        schema = self._schema(target.kind)
        statement = sql.SQL("COPY {table} ({columns}) FROM STDIN").format(
            table=sql.Identifier(target.base_path, schema.partition_name(target.key)),
            columns=sql.SQL(", ").join(sql.Identifier(name) for name in schema.insert_columns()),
        )
        with conn.transaction():
            with conn.cursor() as cur:
                with cur.copy(statement) as copy:
                    for record in batch:
                        copy.write_row(schema.row_for(record, target.key))
        log.info(
            f"[PARTITION WRITTEN] {target.location}",
            extra={"partition": str(target.key), "rows": len(batch)},
        )
        return target.location


__all__ = ["TableSink", "DDL_RACE_ERRORS", "run_ddl"]
