"""
Pipeline entry points: generate and write records, run named queries, list storage.

Usage (example from CLI):
    from socialpipe.pipeline import run_analysis, run_query, run_write

    report = run_write("posts", count=500, target="storage", span_hours=3)
    rows = run_query("trending_hashtags", {"limit": 5})
    results = run_analysis({"category": "tech", "year": 2024, "month": 8})
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel

from socialpipe.config import Settings, get_settings
from socialpipe.domain.generator import GenerationParams, RecordGenerator
from socialpipe.domain.models import BaseRecord, RecordKind, resolve_kind
from socialpipe.errors import QuerySpecError
from socialpipe.infrastructure.connector import ResilientConnector
from socialpipe.infrastructure.db_factory import query_connector, storage_connector
from socialpipe.infrastructure.storage import StorageEntry
from socialpipe.query.catalog import available_queries, build_named, get_named
from socialpipe.query.executor import QueryExecutor
from socialpipe.query.spec import QuerySpec
from socialpipe.sinks import PartitionSink, resolve_sink
from socialpipe.utils.logging import get_logger
from socialpipe.writer import PartitionedWriter, WriteReport

log = get_logger(__name__)


def _connector_for(sink: PartitionSink, settings: Settings, cancel_event: Optional[threading.Event]) -> ResilientConnector:
    if sink.name == "table":
        return query_connector(settings, cancel_event=cancel_event)
    return storage_connector(settings, cancel_event=cancel_event)


def _default_base_path(sink: PartitionSink, settings: Settings) -> str:
    return settings.table_schema if sink.name == "table" else settings.base_path


def write_records(
    kind: Union[str, RecordKind],
    records: Iterable[BaseRecord],
    target: str = "storage",
    base_path: Optional[str] = None,
    concurrency: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    settings: Optional[Settings] = None,
    connector: Optional[ResilientConnector] = None,
) -> WriteReport:
    """
    Write already-built records through the named sink.

    Parameters
    ----------
    kind : str | RecordKind
        Record kind of every record in `records`.
    records : iterable[BaseRecord]
        Validated records.
    target : str
        Sink name: "storage" (JSON lines) or "table" (partitioned Postgres tables).
    base_path : str | None
        Storage prefix or Postgres schema. Defaults from settings.
    concurrency : int | None
        Partitions written in parallel. Defaults to settings.write_concurrency.
    cancel_event : threading.Event | None
        Setting it aborts retry waits and the remaining partitions.
    settings : Settings | None
        Overrides the cached settings.
    connector : ResilientConnector | None
        Overrides the connector derived from `target`.
    """
    settings = settings or get_settings()
    sink = resolve_sink(target)
    writer = PartitionedWriter(
        sink,
        connector or _connector_for(sink, settings, cancel_event),
        concurrency=concurrency if concurrency is not None else settings.write_concurrency,
    )
    return writer.write(kind, records, base_path or _default_base_path(sink, settings))


def run_write(
    kind: Union[str, RecordKind],
    count: Optional[int] = None,
    target: str = "storage",
    base_path: Optional[str] = None,
    span_hours: Optional[int] = None,
    concurrency: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    settings: Optional[Settings] = None,
    generator: Optional[RecordGenerator] = None,
) -> WriteReport:
    """
    Generate `count` records of `kind` and write them partitioned by hour.

    Returns
    -------
    WriteReport
        Per-partition outcome; call `raise_for_failures()` to turn failures into an error.
    """
    settings = settings or get_settings()
    kind = resolve_kind(kind)
    effective_count = count if count is not None else settings.default_record_count
    params = GenerationParams(span_hours=span_hours or settings.default_span_hours)
    records = (generator or RecordGenerator()).generate(kind, effective_count, params)
    log.info(
        f"[GENERATED] {len(records)} {kind.value}",
        extra={"kind": kind.value, "rows": len(records), "span_hours": params.span_hours},
    )
    return write_records(
        kind,
        records,
        target=target,
        base_path=base_path,
        concurrency=concurrency,
        cancel_event=cancel_event,
        settings=settings,
    )


def run_query(
    name: str,
    params: Optional[Mapping[str, Any]] = None,
    cancel_event: Optional[threading.Event] = None,
    settings: Optional[Settings] = None,
    connector: Optional[ResilientConnector] = None,
) -> List[Any]:
    """
    Run a named query and return typed rows.

    Parameters
    ----------
    name : str
        Catalog entry, see `available_queries()`.
    params : Mapping[str, Any] | None
        Query parameters, validated by the entry's parameter model.

    Raises
    ------
    QuerySpecError
        Unknown query or bad parameters; raised before connecting.
    BackendUnavailable
        The query backend stayed unreachable for the whole retry budget.
    """
    settings = settings or get_settings()
    spec, row_model = build_named(name, params, table_schema=settings.table_schema)
    executor = QueryExecutor(connector or query_connector(settings, cancel_event=cancel_event))
    return executor.run(spec, row_model)


def run_analysis(
    shared_params: Optional[Mapping[str, Any]] = None,
    cancel_event: Optional[threading.Event] = None,
    settings: Optional[Settings] = None,
    connector: Optional[ResilientConnector] = None,
) -> Dict[str, List[Any]]:
    """
    Run every named query in catalog order and collect the rows by query name.

    Each query receives only the shared parameters its parameter model declares,
    so `{"limit": 5, "category": "tech", "year": 2024, "month": 8}` feeds all of them.
    Every spec is built before the first connection is opened.

    Raises
    ------
    QuerySpecError
        A parameter no query accepts, or a value some query rejects.
    BackendUnavailable
        The query backend stayed unreachable for the whole retry budget.
    """
    settings = settings or get_settings()
    shared = dict(shared_params or {})
    names = available_queries()
    accepted = {name: set(get_named(name).params_model.model_fields) for name in names}
    unknown = sorted(set(shared) - set().union(*accepted.values()))
    if unknown:
        raise QuerySpecError(f"No query accepts parameter(s): {', '.join(unknown)}")

    plans: List[Tuple[str, QuerySpec, Type[BaseModel]]] = []
    for name in names:
        params = {key: value for key, value in shared.items() if key in accepted[name]}
        spec, row_model = build_named(name, params, table_schema=settings.table_schema)
        plans.append((name, spec, row_model))

    executor = QueryExecutor(connector or query_connector(settings, cancel_event=cancel_event))
    results: Dict[str, List[Any]] = {}
    for name, spec, row_model in plans:
        results[name] = executor.run(spec, row_model)
        log.info(f"[ANALYSIS] {name}: {len(results[name])} rows", extra={"query": name, "rows": len(results[name])})
    return results


def list_storage(path: str = "", settings: Optional[Settings] = None) -> List[StorageEntry]:
    """List entries under `path` in the storage backend."""
    settings = settings or get_settings()
    with storage_connector(settings).session() as handle:
        return handle.resource.list(path)


__all__ = ["write_records", "run_write", "run_query", "run_analysis", "list_storage", "available_queries"]
