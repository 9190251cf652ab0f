"""
Partition sinks: where a partitioned write publishes its batches.
"""

from typing import Callable, Dict, List

from socialpipe.errors import InvalidArgument
from socialpipe.sinks.abstract import AbstractPartitionSink, PartitionSink, PartitionTarget
from socialpipe.sinks.json_lines import JsonLinesSink
from socialpipe.sinks.table import TableSink


def _sink_factories() -> Dict[str, Callable[[], PartitionSink]]:
    """Registry of available sinks."""
    return {
        "storage": lambda: JsonLinesSink(),
        "table": lambda: TableSink(),
    }


def available_sinks() -> List[str]:
    return sorted(_sink_factories().keys())


def resolve_sink(name: str) -> PartitionSink:
    factories = _sink_factories()
    if name not in factories:
        raise InvalidArgument(f"Unknown write target '{name}'. Available: {', '.join(sorted(factories))}")
    return factories[name]()


__all__ = [
    "AbstractPartitionSink",
    "PartitionSink",
    "PartitionTarget",
    "JsonLinesSink",
    "TableSink",
    "available_sinks",
    "resolve_sink",
]
