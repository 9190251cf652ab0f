"""
Partitioned writes for socialpipe.

`PartitionedWriter.write(kind, records, base_path)` groups records by UTC hour and
publishes each group through a sink, one connection handle per partition. Partitions
are independent: a failing partition is recorded in the `WriteReport` and the others
are still attempted. Only cancellation aborts the whole call.

Usage:
    from socialpipe.infrastructure import storage_connector
    from socialpipe.sinks import JsonLinesSink
    from socialpipe.writer import PartitionedWriter

    writer = PartitionedWriter(JsonLinesSink(), storage_connector())
    report = writer.write("posts", records, "social")
    report.raise_for_failures()
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from socialpipe.domain.models import BaseRecord, RecordKind, resolve_kind
from socialpipe.errors import Cancelled, InvalidArgument, PartialWriteFailure
from socialpipe.infrastructure.connector import ResilientConnector
from socialpipe.partitioning import Batch, PartitionKey, partition
from socialpipe.sinks.abstract import PartitionSink
from socialpipe.utils.logging import get_logger
from socialpipe.utils.profiler import profile_block

log = get_logger(__name__)


@dataclass
class PartitionResult:
    """Outcome of writing one partition."""

    key: PartitionKey
    location: Optional[str]
    records: int
    success: bool
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "partition": str(self.key),
            "location": self.location,
            "records": self.records,
            "success": self.success,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class WriteReport:
    """
    Per-partition outcome of one `write` call.

    Attributes
    ----------
    kind : RecordKind
        Record kind written.
    sink : str
        Name of the sink used.
    base_path : str
        Storage prefix or Postgres schema.
    partitions : list[PartitionResult]
        One entry per partition, sorted by key.
    duration_seconds : float
        Wall time of the whole call.
    peak_rss_bytes : int | None
        Peak resident memory sampled during the call.
    """

    kind: RecordKind
    sink: str
    base_path: str
    partitions: List[PartitionResult] = field(default_factory=list)
    duration_seconds: float = 0.0
    peak_rss_bytes: Optional[int] = None

    @property
    def total_records(self) -> int:
        return sum(p.records for p in self.partitions)

    @property
    def written_records(self) -> int:
        return sum(p.records for p in self.partitions if p.success)

    @property
    def succeeded(self) -> List[PartitionResult]:
        return [p for p in self.partitions if p.success]

    @property
    def failed(self) -> List[PartitionResult]:
        return [p for p in self.partitions if not p.success]

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        """Raise `PartialWriteFailure` if any partition failed."""
        if self.failed:
            raise PartialWriteFailure(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "sink": self.sink,
            "base_path": self.base_path,
            "total_records": self.total_records,
            "written_records": self.written_records,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "duration_seconds": round(self.duration_seconds, 3),
            "peak_rss_bytes": self.peak_rss_bytes,
            "partitions": [p.to_dict() for p in self.partitions],
        }


class PartitionedWriter:
    """
    Write record batches partition by partition through a sink.

    Parameters
    ----------
    sink : PartitionSink
        Output format and backend-specific container handling.
    connector : ResilientConnector
        Connector whose resource the sink writes to.
    concurrency : int
        Partitions written in parallel; 1 writes them sequentially.
    """

    def __init__(self, sink: PartitionSink, connector: ResilientConnector, concurrency: int = 1) -> None:
        if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
            raise InvalidArgument(f"concurrency must be a positive integer, got {concurrency!r}")
        self.sink = sink
        self.connector = connector
        self.concurrency = concurrency

    def write(
        self, kind: Union[str, RecordKind], records: Iterable[BaseRecord], base_path: str
    ) -> WriteReport:
        """
        Partition `records` and write every partition.

        Returns
        -------
        WriteReport
            Success or failure per partition; failures never raise here.

        Raises
        ------
        InvalidArgument
            A record is not of `kind`; nothing is written.
        Cancelled
            The connector's cancel event fired; remaining partitions are abandoned.
        """
        kind = resolve_kind(kind)
        records = list(records)
        mismatched = sorted({record.kind.value for record in records if record.kind is not kind})
        if mismatched:
            raise InvalidArgument(f"Cannot write {', '.join(mismatched)} records as '{kind.value}'")
        batches = partition(records)
        report = WriteReport(kind=kind, sink=self.sink.name, base_path=base_path)
        if not batches:
            log.info("[WRITE SKIPPED] no records", extra={"kind": kind.value})
            return report

        log.info(
            f"[WRITE START] {kind.value} -> {self.sink.name}:{base_path}",
            extra={"kind": kind.value, "partitions": len(batches), "concurrency": self.concurrency},
        )
        with profile_block(f"write:{kind.value}") as stats:
            bootstrap_error = self._bootstrap(kind, base_path)
            if bootstrap_error is not None:
                results = [
                    PartitionResult(key=key, location=None, records=len(batch), success=False, error=bootstrap_error)
                    for key, batch in batches.items()
                ]
            elif self.concurrency == 1 or len(batches) == 1:
                results = [self._write_partition(kind, batch, base_path) for batch in batches.values()]
            else:
                results = self._write_parallel(kind, list(batches.values()), base_path)

        report.partitions = sorted(results, key=lambda result: result.key)
        report.duration_seconds = stats.duration_seconds
        report.peak_rss_bytes = stats.peak_rss_bytes
        log.info(
            f"[WRITE DONE] {kind.value}: {len(report.succeeded)} ok, {len(report.failed)} failed",
            extra={
                "kind": kind.value,
                "rows": report.written_records,
                "failed": len(report.failed),
                "duration": round(report.duration_seconds, 3),
            },
        )
        return report

    def _bootstrap(self, kind: RecordKind, base_path: str) -> Optional[str]:
        label = self.sink.bootstrap_label(kind, base_path)
        try:
            self.connector.ensure_started(label, lambda handle: self.sink.bootstrap(handle, kind, base_path))
        except Cancelled:
            raise
        except Exception as exc:  # noqa: BLE001 - every partition is reported as failed instead
            log.exception(f"[BOOTSTRAP FAILED] {label}", extra={"kind": kind.value})
            return f"bootstrap failed: {exc}"
        return None

    def _write_partition(self, kind: RecordKind, batch: Batch, base_path: str) -> PartitionResult:
        target = self.sink.target(kind, batch.key, base_path)
        start = time.perf_counter()
        try:
            with self.connector.session() as handle:
                self.sink.ensure_container(handle, target)
                location = self.sink.write_batch(handle, target, batch)
        except Cancelled:
            raise
        except Exception as exc:  # noqa: BLE001 - partition failures are isolated
            log.error(
                f"[PARTITION FAILED] {target.location}: {exc}",
                extra={"partition": str(batch.key), "rows": len(batch), "error": type(exc).__name__},
            )
            return PartitionResult(
                key=batch.key,
                location=target.location,
                records=len(batch),
                success=False,
                error=f"{type(exc).__name__}: {exc}",
                duration_seconds=time.perf_counter() - start,
            )
        return PartitionResult(
            key=batch.key,
            location=location,
            records=len(batch),
            success=True,
            duration_seconds=time.perf_counter() - start,
        )

    def _write_parallel(self, kind: RecordKind, batches: List[Batch], base_path: str) -> List[PartitionResult]:
        results: List[PartitionResult] = []
        with ThreadPoolExecutor(max_workers=min(self.concurrency, len(batches))) as executor:
            futures = {executor.submit(self._write_partition, kind, batch, base_path): batch for batch in batches}
            try:
                for future in as_completed(futures):
                    results.append(future.result())
            except Cancelled:
                for future in futures:
                    future.cancel()
                raise
        return results


__all__ = ["PartitionResult", "WriteReport", "PartitionedWriter"]
