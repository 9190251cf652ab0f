"""
Query layer: declarative specs, SQL building and execution against the partitioned tables.
"""

from socialpipe.query.builder import ParameterizedQuery, QueryBuilder
from socialpipe.query.catalog import available_queries, build_named, describe_queries
from socialpipe.query.executor import QueryExecutor
from socialpipe.query.schema import TABLE_BY_KIND, TABLES, Column, TableSchema
from socialpipe.query.spec import Aggregate, FanOut, OrderBy, Predicate, QuerySpec

__all__ = [
    "Aggregate",
    "Column",
    "FanOut",
    "OrderBy",
    "ParameterizedQuery",
    "Predicate",
    "QueryBuilder",
    "QueryExecutor",
    "QuerySpec",
    "TABLES",
    "TABLE_BY_KIND",
    "TableSchema",
    "available_queries",
    "build_named",
    "describe_queries",
]
