"""
Translate a `QuerySpec` into parameterized PostgreSQL.

Identifiers are composed with `psycopg.sql`; every scalar that came from the caller
(filter values, HAVING thresholds, the limit) is a `%s` placeholder bound at execution
time. A `QuerySpec` is validated against the table schema first, so a malformed one raises
`QuerySpecError` before any connection is opened.

Clause order is SELECT / FROM [CROSS JOIN LATERAL unnest] / WHERE / GROUP BY / HAVING /
ORDER BY / LIMIT. Ordering ties keep the backend's natural order; callers that need a
deterministic order add more `OrderBy` entries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from psycopg import sql

from socialpipe.errors import QuerySpecError
from socialpipe.query.schema import TABLES, Column, TableSchema
from socialpipe.query.spec import COMPARISON_OPS, Aggregate, FanOut, OrderBy, Predicate, QuerySpec

TABLE_ALIAS = "t"
FAN_ALIAS = "fan"

_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
_SQL_OPS = {"=": "=", "!=": "<>", ">": ">", ">=": ">=", "<": "<", "<=": "<="}
_SQL_FUNCS = {"count": "COUNT", "sum": "SUM", "avg": "AVG", "max": "MAX", "min": "MIN", "stddev_pop": "STDDEV_POP"}
_NUMERIC_FUNCS = frozenset({"sum", "avg", "stddev_pop"})


@dataclass(frozen=True)
class ParameterizedQuery:
    """SQL statement plus positional parameters, ready for `cursor.execute`."""

    name: str
    statement: sql.Composed
    params: Tuple[Any, ...]

    @property
    def text(self) -> str:
        return self.statement.as_string()


class _Scope:
    """Resolves column names against the table and the optional fan-out alias."""

    def __init__(self, table: TableSchema, fan_out: Optional[FanOut]) -> None:
        self.table = table
        self.fan_out = fan_out

    def column(self, name: str) -> Column:
        if self.fan_out is not None and name == self.fan_out.alias:
            return Column(name, "text")
        column = self.table.column(name)
        if column is None:
            raise QuerySpecError(f"Unknown column '{name}' for table '{self.table.name}'")
        return column

    def ref(self, name: str) -> sql.Identifier:
        self.column(name)
        if self.fan_out is not None and name == self.fan_out.alias:
            return sql.Identifier(FAN_ALIAS, name)
        return sql.Identifier(TABLE_ALIAS, name)


def _check_name(kind: str, name: str) -> None:
    if not _NAME_RE.match(name):
        raise QuerySpecError(f"Invalid {kind} '{name}': use lowercase letters, digits and underscores")


class QueryBuilder:
    """
    Build `ParameterizedQuery` objects from `QuerySpec`s.

    Parameters
    ----------
    tables : Mapping[str, TableSchema] | None
        Schema registry used for validation. Defaults to the built-in tables.
    """

    def __init__(self, tables: Optional[Mapping[str, TableSchema]] = None) -> None:
        self._tables = tables or TABLES

    def build(self, spec: QuerySpec) -> ParameterizedQuery:
        table = self._tables.get(spec.table)
        if table is None:
            raise QuerySpecError(f"Unknown table '{spec.table}'. Available: {', '.join(sorted(self._tables))}")
        self._check_fan_out(table, spec.fan_out)
        scope = _Scope(table, spec.fan_out)
        params: List[Any] = []

        if not spec.select and not spec.aggregates:
            raise QuerySpecError("QuerySpec selects nothing: give select columns or aggregates")

        aggregates = self._aggregate_exprs(scope, spec)
        grouped = bool(spec.group_by or spec.aggregates)
        group_names = set(spec.group_by)
        if grouped:
            for name in spec.select:
                if name not in group_names:
                    raise QuerySpecError(f"Column '{name}' must appear in group_by when aggregating")

        select_items = [scope.ref(name) for name in spec.select]
        select_items += [sql.SQL("{} AS {}").format(expr, sql.Identifier(alias)) for alias, expr in aggregates.items()]

        parts: List[sql.Composable] = [
            sql.SQL("SELECT "),
            sql.SQL(", ").join(select_items),
            sql.SQL(" FROM {} AS {}").format(
                sql.Identifier(spec.table_schema, table.name), sql.Identifier(TABLE_ALIAS)
            ),
        ]
        if spec.fan_out is not None:
            parts.append(
                sql.SQL(" CROSS JOIN LATERAL unnest({}) AS {}({})").format(
                    sql.Identifier(TABLE_ALIAS, spec.fan_out.column),
                    sql.Identifier(FAN_ALIAS),
                    sql.Identifier(spec.fan_out.alias),
                )
            )
        if spec.filters:
            conditions = [self._predicate(scope.ref(p.column), p, params) for p in spec.filters]
            parts += [sql.SQL(" WHERE "), sql.SQL(" AND ").join(conditions)]
        if spec.group_by:
            parts += [sql.SQL(" GROUP BY "), sql.SQL(", ").join(scope.ref(name) for name in spec.group_by)]
        if spec.having:
            if not grouped:
                raise QuerySpecError("having requires aggregates or group_by")
            conditions = []
            for predicate in spec.having:
                if predicate.column not in aggregates:
                    raise QuerySpecError(f"having refers to unknown aggregate alias '{predicate.column}'")
                conditions.append(self._predicate(aggregates[predicate.column], predicate, params))
            parts += [sql.SQL(" HAVING "), sql.SQL(" AND ").join(conditions)]
        if spec.order_by:
            terms = [self._order_term(scope, order, aggregates, grouped, group_names) for order in spec.order_by]
            parts += [sql.SQL(" ORDER BY "), sql.SQL(", ").join(terms)]
        if spec.limit is not None:
            if isinstance(spec.limit, bool) or spec.limit < 1:
                raise QuerySpecError(f"limit must be a positive integer, got {spec.limit!r}")
            parts.append(sql.SQL(" LIMIT {}").format(sql.Placeholder()))
            params.append(spec.limit)

        return ParameterizedQuery(name=spec.name, statement=sql.Composed(parts), params=tuple(params))

    # Validation helpers ----------------------------------------------------

    @staticmethod
    def _check_fan_out(table: TableSchema, fan_out: Optional[FanOut]) -> None:
        if fan_out is None:
            return
        column = table.column(fan_out.column)
        if column is None:
            raise QuerySpecError(f"Fan-out column '{fan_out.column}' not in table '{table.name}'")
        if not column.array:
            raise QuerySpecError(f"Fan-out column '{fan_out.column}' is not multi-valued")
        _check_name("fan-out alias", fan_out.alias)
        if table.column(fan_out.alias) is not None:
            raise QuerySpecError(f"Fan-out alias '{fan_out.alias}' shadows a table column")

    @staticmethod
    def _aggregate_exprs(scope: _Scope, spec: QuerySpec) -> Dict[str, sql.Composable]:
        exprs: Dict[str, sql.Composable] = {}
        for aggregate in spec.aggregates:
            _check_name("aggregate alias", aggregate.alias)
            if aggregate.alias in exprs or aggregate.alias in spec.select:
                raise QuerySpecError(f"Duplicate output name '{aggregate.alias}'")
            exprs[aggregate.alias] = QueryBuilder._aggregate_expr(scope, aggregate)
        return exprs

    @staticmethod
    def _aggregate_expr(scope: _Scope, aggregate: Aggregate) -> sql.Composable:
        func = aggregate.func
        if func == "count" and aggregate.column is None:
            return sql.SQL("COUNT(*)")
        if aggregate.column is None:
            raise QuerySpecError(f"Aggregate '{func}' needs a column")
        column = scope.column(aggregate.column)
        ref = scope.ref(aggregate.column)
        if func == "count_if":
            if not column.boolean:
                raise QuerySpecError(f"count_if needs a boolean column, '{column.name}' is {column.sql_type}")
            return sql.SQL("COUNT(*) FILTER (WHERE {})").format(ref)
        if func not in _SQL_FUNCS:
            raise QuerySpecError(f"Unknown aggregate function '{func}'")
        if func in _NUMERIC_FUNCS and not column.numeric:
            raise QuerySpecError(f"Aggregate '{func}' needs a numeric column, '{column.name}' is not")
        if column.array:
            raise QuerySpecError(f"Aggregate '{func}' cannot take array column '{column.name}'; fan it out first")
        return sql.SQL("{}({})").format(sql.SQL(_SQL_FUNCS[func]), ref)

    @staticmethod
    def _predicate(target: sql.Composable, predicate: Predicate, params: List[Any]) -> sql.Composable:
        op = predicate.op
        if op not in COMPARISON_OPS:
            raise QuerySpecError(f"Unknown comparison operator '{op}'")
        if op == "in":
            if isinstance(predicate.value, (str, bytes)) or not isinstance(predicate.value, (list, tuple, set, frozenset)):
                raise QuerySpecError(f"'in' on '{predicate.column}' needs a list of values")
            if not predicate.value:
                raise QuerySpecError(f"'in' on '{predicate.column}' needs at least one value")
            params.append(list(predicate.value))
            return sql.SQL("{} = ANY({})").format(target, sql.Placeholder())
        if predicate.value is None:
            if op not in ("=", "!="):
                raise QuerySpecError(f"'{op}' cannot compare '{predicate.column}' with NULL")
            return sql.SQL("{} IS NULL" if op == "=" else "{} IS NOT NULL").format(target)
        params.append(predicate.value)
        return sql.SQL("{} {} {}").format(target, sql.SQL(_SQL_OPS[op]), sql.Placeholder())

    @staticmethod
    def _order_term(
        scope: _Scope,
        order: OrderBy,
        aggregates: Dict[str, sql.Composable],
        grouped: bool,
        group_names: set,
    ) -> sql.Composable:
        if not order.columns:
            raise QuerySpecError("order_by entry needs at least one column")
        exprs = []
        for name in order.columns:
            if name in aggregates:
                exprs.append(aggregates[name])
                continue
            if grouped and name not in group_names:
                raise QuerySpecError(f"Cannot order grouped rows by '{name}': not grouped or aggregated")
            column = scope.column(name)
            if len(order.columns) > 1 and not column.numeric:
                raise QuerySpecError(f"Cannot sum non-numeric column '{name}' for ordering")
            exprs.append(scope.ref(name))
        expr = exprs[0] if len(exprs) == 1 else sql.SQL("({})").format(sql.SQL(" + ").join(exprs))
        return sql.SQL("{} DESC" if order.descending else "{} ASC").format(expr)


__all__ = ["ParameterizedQuery", "QueryBuilder", "TABLE_ALIAS", "FAN_ALIAS"]
