"""
Error taxonomy for socialpipe.

Pre-flight errors (`InvalidArgument`, `ValidationError`, `QuerySpecError`) are raised
before any backend is touched and are never retried. `BackendUnavailable` is the terminal
state of the connector's retry loop. `PartialWriteFailure` is only raised on demand from a
`WriteReport`; partition failures are otherwise reported, not raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from socialpipe.writer import WriteReport


class PipelineError(Exception):
    """Base class for every error raised by socialpipe."""


class InvalidArgument(PipelineError, ValueError):
    """A caller-supplied argument is out of range or unsupported."""


class ValidationError(PipelineError):
    """
    A record failed its field or cross-field constraints.

    Attributes
    ----------
    kind : str
        Record kind that was being built (e.g. ``posts``).
    violations : list[str]
        Human-readable description of every failed constraint.
    """

    def __init__(self, kind: str, violations: Sequence[str]) -> None:
        self.kind = kind
        self.violations: List[str] = list(violations)
        super().__init__(f"{kind} validation failed: " + "; ".join(self.violations))


class BackendUnavailable(PipelineError):
    """The connector exhausted its retry budget for a backend target."""

    def __init__(self, target: str, attempts: int, last_error: Optional[BaseException]) -> None:
        self.target = target
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Backend '{target}' unavailable after {attempts} attempt(s){detail}")


class Cancelled(PipelineError):
    """An in-flight retry wait or connection attempt was aborted by the caller."""


class QuerySpecError(PipelineError, ValueError):
    """A QuerySpec is malformed; detected before any connection is opened."""


class PartialWriteFailure(PipelineError):
    """One or more partitions of a multi-partition write failed."""

    def __init__(self, report: "WriteReport") -> None:
        self.report = report
        failed = ", ".join(str(p.key) for p in report.failed)
        super().__init__(
            f"{len(report.failed)} of {len(report.partitions)} partition(s) failed "
            f"for kind '{report.kind}': {failed}"
        )


__all__ = [
    "PipelineError",
    "InvalidArgument",
    "ValidationError",
    "BackendUnavailable",
    "Cancelled",
    "QuerySpecError",
    "PartialWriteFailure",
]
