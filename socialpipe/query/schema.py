"""
Table schemas for the partitioned query backend.

Each record kind maps to one parent table declared `PARTITION BY RANGE (year, month,
day, hour)`; every hour gets its own child table. The schemas drive three things:
DDL for parent and child tables, the COPY column order for bulk writes, and
column validation in the query builder.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from psycopg import sql

from socialpipe.domain.models import BaseRecord, RecordKind
from socialpipe.partitioning import PARTITION_COLUMNS, PartitionKey

NUMERIC_TYPES = frozenset({"integer", "bigint", "double precision", "numeric"})


@dataclass(frozen=True)
class Column:
    name: str
    sql_type: str
    source: Optional[str] = None
    array: bool = False

    @property
    def numeric(self) -> bool:
        return not self.array and self.sql_type in NUMERIC_TYPES

    @property
    def boolean(self) -> bool:
        return self.sql_type == "boolean"


_PARTITION_COLUMN_DEFS: Tuple[Column, ...] = tuple(Column(name, "integer") for name in PARTITION_COLUMNS)


@dataclass(frozen=True)
class TableSchema:
    name: str
    kind: RecordKind
    columns: Tuple[Column, ...]

    @property
    def all_columns(self) -> Tuple[Column, ...]:
        return self.columns + _PARTITION_COLUMN_DEFS

    def column(self, name: str) -> Optional[Column]:
        for column in self.all_columns:
            if column.name == name:
                return column
        return None

    def insert_columns(self) -> Tuple[str, ...]:
        return tuple(column.name for column in self.all_columns)

    def row_for(self, record: BaseRecord, key: PartitionKey) -> Tuple[Any, ...]:
        """COPY values for a record, in `insert_columns()` order."""
        values = []
        for column in self.columns:
            value = getattr(record, column.source or column.name)
            values.append(list(value) if column.array else value)
        return tuple(values) + tuple(key)

    def partition_name(self, key: PartitionKey) -> str:
        return f"{self.name}_{key.table_suffix()}"

    def create_parent_sql(self, table_schema: str) -> sql.Composed:
        column_defs = sql.SQL(", ").join(
            sql.SQL("{} {}{}").format(
                sql.Identifier(column.name),
                sql.SQL(column.sql_type + ("[]" if column.array else "")),
                sql.SQL(" NOT NULL" if column.name in PARTITION_COLUMNS else ""),
            )
            for column in self.all_columns
        )
        return sql.SQL("CREATE TABLE IF NOT EXISTS {table} ({columns}) PARTITION BY RANGE ({keys})").format(
            table=sql.Identifier(table_schema, self.name),
            columns=column_defs,
            keys=sql.SQL(", ").join(sql.Identifier(name) for name in PARTITION_COLUMNS),
        )

    def create_partition_sql(self, table_schema: str, key: PartitionKey) -> sql.Composed:
        return sql.SQL(
            "CREATE TABLE IF NOT EXISTS {child} PARTITION OF {parent} FOR VALUES FROM ({lower}) TO ({upper})"
        ).format(
            child=sql.Identifier(table_schema, self.partition_name(key)),
            parent=sql.Identifier(table_schema, self.name),
            lower=sql.SQL(", ").join(sql.Literal(value) for value in key),
            upper=sql.SQL(", ").join(sql.Literal(value) for value in key.upper_bound()),
        )


POSTS = TableSchema(
    name="posts",
    kind=RecordKind.POSTS,
    columns=(
        Column("id", "text"),
        Column("owner_id", "text"),
        Column("display_name", "text"),
        Column("body", "text"),
        Column("event_timestamp", "bigint", source="timestamp"),
        Column("like_count", "integer"),
        Column("retweet_count", "integer"),
        Column("reply_count", "integer"),
        Column("is_celebrity", "boolean"),
        Column("celebrity_category", "text"),
        Column("hashtags", "text", array=True),
        Column("mentions", "text", array=True),
    ),
)

USERS = TableSchema(
    name="users",
    kind=RecordKind.USERS,
    columns=(
        Column("id", "text"),
        Column("username", "text"),
        Column("display_name", "text"),
        Column("event_timestamp", "bigint", source="timestamp"),
        Column("follower_count", "bigint"),
        Column("following_count", "bigint"),
        Column("post_count", "integer"),
        Column("verified", "boolean"),
        Column("bio", "text"),
        Column("category", "text"),
        Column("is_celebrity", "boolean"),
    ),
)

EVENTS = TableSchema(
    name="events",
    kind=RecordKind.EVENTS,
    columns=(
        Column("id", "text"),
        Column("event_type", "text"),
        Column("user_id", "text"),
        Column("target_id", "text"),
        Column("event_timestamp", "bigint", source="timestamp"),
        Column("metadata", "text"),
        Column("is_celebrity_involved", "boolean"),
        Column("celebrity_id", "text"),
    ),
)

TABLES: Dict[str, TableSchema] = {schema.name: schema for schema in (POSTS, USERS, EVENTS)}
TABLE_BY_KIND: Dict[RecordKind, TableSchema] = {schema.kind: schema for schema in TABLES.values()}


__all__ = [
    "Column",
    "TableSchema",
    "POSTS",
    "USERS",
    "EVENTS",
    "TABLES",
    "TABLE_BY_KIND",
]
