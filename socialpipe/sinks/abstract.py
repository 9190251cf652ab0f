"""
Abstract sink interfaces for partitioned writes.

A sink knows how to turn one partition of records into durable output on a backend:
a JSON-lines file in a storage directory, or rows in a child table. The writer drives
every sink through the same four steps:

1. `bootstrap` once per process per (sink, kind, base path), via the connector's
   startup latch;
2. `target` to name the partition's container (directory or table);
3. `ensure_container` to create it if missing, tolerating concurrent creators;
4. `write_batch` to publish the records and return the location written.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from socialpipe.domain.models import RecordKind
from socialpipe.infrastructure.connector import ConnectionHandle
from socialpipe.partitioning import Batch, PartitionKey


@dataclass(frozen=True)
class PartitionTarget:
    """
    Where one partition lands.

    Attributes
    ----------
    kind : RecordKind
        Record kind being written.
    key : PartitionKey
        The partition's (year, month, day, hour).
    base_path : str
        Storage prefix or Postgres schema the write was rooted at.
    location : str
        Container for the partition: a storage directory or a qualified table name.
    """

    kind: RecordKind
    key: PartitionKey
    base_path: str
    location: str


@runtime_checkable
class PartitionSink(Protocol):
    """
    Common interface all partition sinks implement.

    Attributes
    ----------
    name : str
        Short machine-friendly identifier, also the CLI `--target` value.
    description : str
        Human-friendly summary of the output format.
    """

    name: str
    description: str

    def bootstrap_label(self, kind: RecordKind, base_path: str) -> str:
        ...

    def target(self, kind: RecordKind, key: PartitionKey, base_path: str) -> PartitionTarget:
        ...

    def bootstrap(self, handle: ConnectionHandle, kind: RecordKind, base_path: str) -> None:
        ...

    def ensure_container(self, handle: ConnectionHandle, target: PartitionTarget) -> None:
        ...

    def write_batch(self, handle: ConnectionHandle, target: PartitionTarget, batch: Batch) -> str:
        """
        Publish one partition's records.

        Parameters
        ----------
        handle : ConnectionHandle
            Live connection owned by this partition's write.
        target : PartitionTarget
            Result of `target()` for the batch's key.
        batch : Batch
            Records sharing the key, in input order.

        Returns
        -------
        str
            The concrete location written (file path or table name).
        """
        ...


class AbstractPartitionSink(abc.ABC):
    """
    ABC helper for class-based sinks.

    Subclasses set `name` and `description` and implement the abstract steps.
    """

    name: str
    description: str

    def bootstrap_label(self, kind: RecordKind, base_path: str) -> str:
        """Startup latch label; one bootstrap per sink, kind and base path."""
        return f"{self.name}:{kind.value}:{base_path}"

    @abc.abstractmethod
    def target(self, kind: RecordKind, key: PartitionKey, base_path: str) -> PartitionTarget:
        raise NotImplementedError

    @abc.abstractmethod
    def bootstrap(self, handle: ConnectionHandle, kind: RecordKind, base_path: str) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def ensure_container(self, handle: ConnectionHandle, target: PartitionTarget) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def write_batch(self, handle: ConnectionHandle, target: PartitionTarget, batch: Batch) -> str:  # pragma: no cover
        raise NotImplementedError


__all__ = ["PartitionTarget", "PartitionSink", "AbstractPartitionSink"]
