"""
Declarative query specifications.

A `QuerySpec` names a table, the columns to project, filters, an optional fan-out of
a multi-valued column, grouping, aggregates, HAVING conditions, ordering and a limit.
It never carries backend syntax; `QueryBuilder` validates it against the table schema
and turns it into parameterized SQL.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict

COMPARISON_OPS = ("=", "!=", ">", ">=", "<", "<=", "in")
AGGREGATE_FUNCS = ("count", "sum", "avg", "max", "min", "stddev_pop", "count_if")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Predicate(_Frozen):
    """`column <op> value`; `value` is always bound as a parameter."""

    column: str
    op: str = "="
    value: Any = None


class FanOut(_Frozen):
    """Explode array `column` into one row per element, exposed as `alias`."""

    column: str
    alias: str


class Aggregate(_Frozen):
    """
    `func(column) AS alias`.

    `count` without a column counts rows; `count_if` counts rows where a boolean
    column is true.
    """

    func: str
    alias: str
    column: Optional[str] = None


class OrderBy(_Frozen):
    """Order by one column, or by the sum of several."""

    columns: Tuple[str, ...]
    descending: bool = True


class QuerySpec(_Frozen):
    table: str
    select: Tuple[str, ...] = ()
    filters: Tuple[Predicate, ...] = ()
    fan_out: Optional[FanOut] = None
    group_by: Tuple[str, ...] = ()
    aggregates: Tuple[Aggregate, ...] = ()
    having: Tuple[Predicate, ...] = ()
    order_by: Tuple[OrderBy, ...] = ()
    limit: Optional[int] = None
    table_schema: str = "public"
    name: str = "adhoc"


__all__ = [
    "COMPARISON_OPS",
    "AGGREGATE_FUNCS",
    "Predicate",
    "FanOut",
    "Aggregate",
    "OrderBy",
    "QuerySpec",
]
