"""
Time partitioning for socialpipe.

A record's partition key is the (year, month, day, hour) of its timestamp in UTC.
The same key names a storage directory (`year=2024/month=08/day=01/hour=13`) and a
table partition (`posts_y2024m08d01h13`), so both backends agree on grouping.

Usage:
    from socialpipe.partitioning import key_of, partition

    key_of(1722517200)            # PartitionKey(year=2024, month=8, day=1, hour=13)
    batches = partition(records)  # {PartitionKey: Batch}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, NamedTuple, Tuple

from socialpipe.domain.models import BaseRecord

PARTITION_COLUMNS: Tuple[str, ...] = ("year", "month", "day", "hour")


class PartitionKey(NamedTuple):
    year: int
    month: int
    day: int
    hour: int

    def path_segment(self) -> str:
        """Hive-style directory segment, zero-padded."""
        return f"year={self.year}/month={self.month:02d}/day={self.day:02d}/hour={self.hour:02d}"

    def table_suffix(self) -> str:
        return f"y{self.year}m{self.month:02d}d{self.day:02d}h{self.hour:02d}"

    def upper_bound(self) -> Tuple[int, int, int, int]:
        """Exclusive upper bound of this hour for a RANGE (year, month, day, hour) partition."""
        return (self.year, self.month, self.day, self.hour + 1)

    def __str__(self) -> str:
        return f"{self.year}/{self.month:02d}/{self.day:02d}/{self.hour:02d}"


SECONDS_PER_DAY = 86_400


def _civil_from_days(days: int) -> Tuple[int, int, int]:
    """Proleptic Gregorian (year, month, day) for a count of days since 1970-01-01."""
    days += 719_468  # shift the epoch to 0000-03-01
    era = days // 146_097
    day_of_era = days - era * 146_097
    year_of_era = (day_of_era - day_of_era // 1460 + day_of_era // 36_524 - day_of_era // 146_096) // 365
    day_of_year = day_of_era - (365 * year_of_era + year_of_era // 4 - year_of_era // 100)
    shifted_month = (5 * day_of_year + 2) // 153  # March == 0
    day = day_of_year - (153 * shifted_month + 2) // 5 + 1
    month = shifted_month + 3 if shifted_month < 10 else shifted_month - 9
    year = year_of_era + era * 400 + (1 if month <= 2 else 0)
    return year, month, day


def key_of(timestamp: int) -> PartitionKey:
    """
    Partition key of an epoch-seconds timestamp, interpreted in UTC.

    Pure integer arithmetic, so any positive timestamp maps to a key, including ones
    past year 9999 where `datetime` stops. Callers guarantee a positive timestamp
    (record validation rejects the rest).
    """
    days, seconds = divmod(timestamp, SECONDS_PER_DAY)
    year, month, day = _civil_from_days(days)
    return PartitionKey(year, month, day, seconds // 3600)


@dataclass
class Batch:
    """Records sharing one partition key, in input order."""

    key: PartitionKey
    records: List[BaseRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[BaseRecord]:
        return iter(self.records)


def partition(records: Iterable[BaseRecord]) -> Dict[PartitionKey, Batch]:
    """
    Group records by partition key in a single pass.

    The mapping preserves first-seen key order and each batch preserves input order,
    so iterating the result repeatedly yields the same grouping.
    """
    batches: Dict[PartitionKey, Batch] = {}
    for record in records:
        key = key_of(record.timestamp)
        batch = batches.get(key)
        if batch is None:
            batch = batches[key] = Batch(key=key)
        batch.records.append(record)
    return batches


__all__ = ["PARTITION_COLUMNS", "PartitionKey", "Batch", "key_of", "partition"]
