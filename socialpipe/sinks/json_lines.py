"""
JSON-lines sink for the storage backend.

Layout:
    <base_path>/<kind>/year=YYYY/month=MM/day=DD/hour=HH/<kind>_<YYYYMMDD_HHMMSS>.json

One UTF-8 JSON object per line, newline terminated. Files are create-only: when two
writes land in the same second the later one gets a `_<n>` suffix.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from socialpipe.domain.models import BaseRecord, RecordKind
from socialpipe.infrastructure.connector import ConnectionHandle
from socialpipe.infrastructure.storage import StorageBackend
from socialpipe.partitioning import Batch, PartitionKey
from socialpipe.sinks.abstract import AbstractPartitionSink, PartitionTarget
from socialpipe.utils.logging import get_logger

log = get_logger(__name__)

FILE_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _join(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


def encode_records(records: Iterable[BaseRecord]) -> bytes:
    """Serialize records as JSON lines."""
    lines = [json.dumps(record.to_json_dict(), ensure_ascii=False) + "\n" for record in records]
    return "".join(lines).encode("utf-8")


class JsonLinesSink(AbstractPartitionSink):
    """
    Write each partition as a new JSON-lines file.

    Parameters
    ----------
    clock : Callable[[], datetime] | None
        Returns the current UTC time used in file names.
    max_name_attempts : int
        How many `_<n>` suffixes to try before giving up on a taken name.
    """

    name: str = "storage"
    description: str = "JSON-lines files under year=/month=/day=/hour= directories."

    def __init__(self, clock: Optional[Callable[[], datetime]] = None, max_name_attempts: int = 100) -> None:
        self._clock = clock or _utc_now
        self.max_name_attempts = max_name_attempts

    def target(self, kind: RecordKind, key: PartitionKey, base_path: str) -> PartitionTarget:
        return PartitionTarget(
            kind=kind,
            key=key,
            base_path=base_path,
            location=_join(base_path, kind.value, key.path_segment()),
        )

    def bootstrap(self, handle: ConnectionHandle, kind: RecordKind, base_path: str) -> None:
        storage: StorageBackend = handle.resource
        storage.mkdir(_join(base_path, kind.value))

    def ensure_container(self, handle: ConnectionHandle, target: PartitionTarget) -> None:
        storage: StorageBackend = handle.resource
        storage.mkdir(target.location)

    def file_name(self, kind: RecordKind, stamp: str, attempt: int = 0) -> str:
        suffix = f"_{attempt}" if attempt else ""
        return f"{kind.value}_{stamp}{suffix}.json"

    def write_batch(self, handle: ConnectionHandle, target: PartitionTarget, batch: Batch) -> str:
        storage: StorageBackend = handle.resource
        payload = encode_records(batch)
        stamp = self._clock().astimezone(timezone.utc).strftime(FILE_TIMESTAMP_FORMAT)

        for attempt in range(self.max_name_attempts):
            path = storage.join_path(target.location, self.file_name(target.kind, stamp, attempt))
            try:
                with storage.open_for_write(path) as stream:
                    stream.write(payload)
            except FileExistsError:
                log.debug("File name taken, trying next suffix", extra={"path": path})
                continue
            log.info(
                f"[PARTITION WRITTEN] {path}",
                extra={"partition": str(target.key), "rows": len(batch), "bytes": len(payload)},
            )
            return path

        raise FileExistsError(
            f"No free file name in '{target.location}' after {self.max_name_attempts} attempts"
        )


__all__ = ["JsonLinesSink", "encode_records", "FILE_TIMESTAMP_FORMAT"]
