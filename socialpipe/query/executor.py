"""
Run built queries against the query backend.

Every `stream()` call holds exactly one connection handle for its lifetime, acquired
through the resilient connector and released when the generator is exhausted or
closed. Rows come back as dicts (`psycopg.rows.dict_row`) or, when a pydantic
`row_model` is given, as validated model instances.
"""

from __future__ import annotations

import time
from typing import Any, Iterator, List, Optional, Type

from psycopg.rows import dict_row
from pydantic import BaseModel

from socialpipe.infrastructure.connector import ResilientConnector
from socialpipe.query.builder import ParameterizedQuery, QueryBuilder
from socialpipe.query.spec import QuerySpec
from socialpipe.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_FETCH_SIZE = 500


def _batched_fetch(cursor, batch_size: int) -> Iterator[list]:
    """
    Yield batches from a cursor using fetchmany.
    """
    while True:
        batch = cursor.fetchmany(batch_size)
        if not batch:
            break
        yield batch


class QueryExecutor:
    """
    Execute `ParameterizedQuery` objects through a `ResilientConnector`.

    Parameters
    ----------
    connector : ResilientConnector
        Connector for the query backend; its resource must be a psycopg connection.
    fetch_size : int
        Rows pulled from the cursor per round trip.
    """

    def __init__(self, connector: ResilientConnector, fetch_size: int = DEFAULT_FETCH_SIZE) -> None:
        self.connector = connector
        self.fetch_size = fetch_size
        self._builder = QueryBuilder()

    def stream(self, query: ParameterizedQuery, row_model: Optional[Type[BaseModel]] = None) -> Iterator[Any]:
        """
        Yield result rows lazily.

        Raises
        ------
        BackendUnavailable
            The backend could not be reached within the retry budget.
        Cancelled
            The connector's cancel event fired while connecting.
        """
        start = time.perf_counter()
        rows = 0
        with self.connector.session() as handle:
            conn = handle.resource
            log.info(f"[QUERY START] {query.name}", extra={"query": query.name, "params": len(query.params)})
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query.statement, query.params)
                for batch in _batched_fetch(cur, self.fetch_size):
                    for row in batch:
                        rows += 1
                        yield row_model.model_validate(row) if row_model is not None else row
        log.info(
            f"[QUERY DONE] {query.name}",
            extra={"query": query.name, "rows": rows, "duration": round(time.perf_counter() - start, 3)},
        )

    def execute(self, query: ParameterizedQuery, row_model: Optional[Type[BaseModel]] = None) -> List[Any]:
        return list(self.stream(query, row_model))

    def run(self, spec: QuerySpec, row_model: Optional[Type[BaseModel]] = None) -> List[Any]:
        """Build then execute; a malformed spec fails before any connection is opened."""
        return self.execute(self._builder.build(spec), row_model)


__all__ = ["QueryExecutor", "DEFAULT_FETCH_SIZE"]
