"""
Domain package for socialpipe.

Exports the record models and the synthetic record generator. Keep this package
focused on data definitions, validation and generation; no I/O.
"""

from socialpipe.domain.generator import GenerationParams, RecordGenerator
from socialpipe.domain.models import (
    CELEBRITY_THRESHOLD,
    BaseRecord,
    Event,
    Post,
    Record,
    RecordKind,
    User,
    build_record,
    resolve_kind,
)

__all__ = [
    "CELEBRITY_THRESHOLD",
    "BaseRecord",
    "Event",
    "Post",
    "Record",
    "RecordKind",
    "User",
    "build_record",
    "resolve_kind",
    "GenerationParams",
    "RecordGenerator",
]
