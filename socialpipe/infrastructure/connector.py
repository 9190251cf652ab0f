"""
Resilient backend connections for socialpipe.

`ResilientConnector` opens a connection to a storage or query backend with a bounded
number of attempts and a fixed delay between them, built on tenacity. Each call walks
an explicit state machine:

    IDLE -> CONNECTING -> CONNECTED
                       -> RETRYING -> CONNECTING ...
                       -> FAILED

Exhausting the attempt budget raises `BackendUnavailable`; a set cancel event raises
`Cancelled` from the retry wait or right after an attempt. The sleep function is
injectable so tests never wait on a real clock.

Process-wide state (attempt counters and startup latches) is guarded by locks; see
`connector_stats()` and `ResilientConnector.ensure_started()`.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Generator, Optional, Tuple, Type

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from socialpipe.errors import BackendUnavailable, Cancelled, InvalidArgument
from socialpipe.utils.logging import get_logger

log = get_logger(__name__)


class TargetKind(str, Enum):
    STORAGE = "storage"
    QUERY = "query"


# (max_attempts, retry_delay_seconds)
DEFAULT_RETRY_POLICY: Dict[TargetKind, Tuple[int, float]] = {
    TargetKind.STORAGE: (5, 3.0),
    TargetKind.QUERY: (3, 1.0),
}


@dataclass(frozen=True)
class BackendTarget:
    """
    A backend the connector can open.

    Attributes
    ----------
    name : str
        Short label used in logs and errors (never contains credentials).
    kind : TargetKind
        Storage-class or query-class; selects the default retry policy.
    uri : str
        Connection string handed to the opener.
    max_attempts : int | None
        Attempt ceiling; defaults to 5 (storage) or 3 (query).
    retry_delay : float | None
        Seconds between attempts; defaults to 3.0 (storage) or 1.0 (query).
    retry_on : tuple[type[BaseException], ...]
        Failures worth retrying. Anything else propagates immediately.
    """

    name: str
    kind: TargetKind
    uri: str
    max_attempts: Optional[int] = None
    retry_delay: Optional[float] = None
    retry_on: Tuple[Type[BaseException], ...] = (OSError,)

    def __post_init__(self) -> None:
        default_attempts, default_delay = DEFAULT_RETRY_POLICY[self.kind]
        if self.max_attempts is None:
            object.__setattr__(self, "max_attempts", default_attempts)
        if self.retry_delay is None:
            object.__setattr__(self, "retry_delay", default_delay)
        if self.max_attempts < 1:
            raise InvalidArgument(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.retry_delay < 0:
            raise InvalidArgument(f"retry_delay must be >= 0, got {self.retry_delay}")

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.name}:{self.uri}"

    def with_policy(self, max_attempts: Optional[int] = None, retry_delay: Optional[float] = None) -> "BackendTarget":
        return replace(
            self,
            max_attempts=max_attempts if max_attempts is not None else self.max_attempts,
            retry_delay=retry_delay if retry_delay is not None else self.retry_delay,
        )


class ConnectorState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    RETRYING = "retrying"
    CONNECTED = "connected"
    FAILED = "failed"


_TRANSITIONS: Dict[ConnectorState, frozenset] = {
    ConnectorState.IDLE: frozenset({ConnectorState.CONNECTING, ConnectorState.FAILED}),
    ConnectorState.CONNECTING: frozenset(
        {ConnectorState.CONNECTED, ConnectorState.RETRYING, ConnectorState.FAILED}
    ),
    ConnectorState.RETRYING: frozenset({ConnectorState.CONNECTING, ConnectorState.FAILED}),
    ConnectorState.CONNECTED: frozenset(),
    ConnectorState.FAILED: frozenset(),
}


@dataclass
class ConnectAttempt:
    """State of one `connect()` call."""

    target: str
    state: ConnectorState = ConnectorState.IDLE
    attempts: int = 0
    history: list = field(default_factory=list)

    def transition(self, new_state: ConnectorState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal connector transition {self.state.value} -> {new_state.value}")
        self.history.append(new_state)
        self.state = new_state


# Process-wide counters -------------------------------------------------------


@dataclass
class TargetStats:
    attempts: int = 0
    connects: int = 0
    failures: int = 0


class ConnectorStats:
    """Thread-safe per-target attempt/success/failure counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_target: Dict[str, TargetStats] = {}

    def _get(self, target: str) -> TargetStats:
        return self._by_target.setdefault(target, TargetStats())

    def record_attempt(self, target: str) -> None:
        with self._lock:
            self._get(target).attempts += 1

    def record_connect(self, target: str) -> None:
        with self._lock:
            self._get(target).connects += 1

    def record_failure(self, target: str) -> None:
        with self._lock:
            self._get(target).failures += 1

    def snapshot(self) -> Dict[str, TargetStats]:
        with self._lock:
            return {name: replace(stats) for name, stats in self._by_target.items()}

    def reset(self) -> None:
        with self._lock:
            self._by_target.clear()


_STATS = ConnectorStats()


def connector_stats() -> ConnectorStats:
    return _STATS


# Startup latches -------------------------------------------------------------


class StartupLatch:
    """
    Run an expensive startup path once per process.

    The first caller runs it while holding the lock; concurrent callers block until it
    finishes and then see it as done. A failing startup leaves the latch open so the
    next caller tries again.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def run_once(self, startup: Callable[[], None]) -> bool:
        """Return True if this call performed the startup."""
        if self._started:
            return False
        with self._lock:
            if self._started:
                return False
            startup()
            self._started = True
            return True


_LATCHES: Dict[str, StartupLatch] = {}
_LATCHES_LOCK = threading.Lock()


def startup_latch(key: str) -> StartupLatch:
    with _LATCHES_LOCK:
        latch = _LATCHES.get(key)
        if latch is None:
            latch = _LATCHES[key] = StartupLatch()
        return latch


def reset_startup_latches() -> None:
    with _LATCHES_LOCK:
        _LATCHES.clear()


# Handles ---------------------------------------------------------------------


def _default_close(resource: Any) -> None:
    close = getattr(resource, "close", None)
    if callable(close):
        close()


class ConnectionHandle:
    """
    A live backend connection owned by one logical operation.

    Use as a context manager; `close()` is idempotent.
    """

    def __init__(
        self,
        target: BackendTarget,
        resource: Any,
        closer: Callable[[Any], None] = _default_close,
        attempts: int = 1,
    ) -> None:
        self.target = target
        self.attempts = attempts
        self._resource = resource
        self._closer = closer
        self._closed = False

    @property
    def resource(self) -> Any:
        if self._closed:
            raise RuntimeError(f"Connection to '{self.target.name}' is already closed")
        return self._resource

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._closer(self._resource)
        except Exception:  # noqa: BLE001 - release must not mask the caller's outcome
            log.warning(f"[RELEASE FAILED] {self.target.name}", exc_info=True, extra={"target": self.target.name})

    def __enter__(self) -> "ConnectionHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# Connector -------------------------------------------------------------------


class ResilientConnector:
    """
    Open connections to one backend target with bounded retry.

    Parameters
    ----------
    target : BackendTarget
        What to connect to, and the retry policy.
    opener : Callable[[BackendTarget], Any]
        Opens the raw resource; raises on failure.
    closer : Callable[[Any], None] | None
        Releases the raw resource. Defaults to calling `.close()`.
    sleep : Callable[[float], None] | None
        Wait between attempts. Defaults to an interruptible wait on `cancel_event`.
    cancel_event : threading.Event | None
        Caller's cancellation signal.
    """

    def __init__(
        self,
        target: BackendTarget,
        opener: Callable[[BackendTarget], Any],
        closer: Optional[Callable[[Any], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.target = target
        self._opener = opener
        self._closer = closer or _default_close
        self.cancel_event = cancel_event or threading.Event()
        self._sleep = sleep or self._interruptible_sleep
        self.last_attempt: Optional[ConnectAttempt] = None

    def _interruptible_sleep(self, seconds: float) -> None:
        if self.cancel_event.wait(seconds):
            raise Cancelled(f"Retry wait for '{self.target.name}' cancelled")

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise Cancelled(f"Connection to '{self.target.name}' cancelled")

    def connect(self) -> ConnectionHandle:
        """
        Open a connection, retrying retryable failures up to the attempt ceiling.

        Raises
        ------
        BackendUnavailable
            Every attempt failed; chains the last failure.
        Cancelled
            The cancel event fired before/after an attempt or during a retry wait.
        """
        target = self.target
        run = ConnectAttempt(target=target.name)
        self.last_attempt = run

        def _before(retry_state) -> None:
            run.attempts = retry_state.attempt_number
            run.transition(ConnectorState.CONNECTING)
            _STATS.record_attempt(target.name)
            log.info(
                f"[CONNECT] {target.name} attempt {run.attempts}/{target.max_attempts}",
                extra={"target": target.name, "attempt": run.attempts, "max_attempts": target.max_attempts},
            )

        def _before_sleep(retry_state) -> None:
            run.transition(ConnectorState.RETRYING)
            error = retry_state.outcome.exception()
            log.warning(
                f"[CONNECT RETRY] {target.name} attempt {run.attempts} failed: {error}; "
                f"waiting {target.retry_delay}s",
                extra={"target": target.name, "attempt": run.attempts, "delay": target.retry_delay},
            )

        retrying = Retrying(
            stop=stop_after_attempt(target.max_attempts),
            wait=wait_fixed(target.retry_delay),
            retry=retry_if_exception_type(target.retry_on),
            sleep=self._sleep,
            before=_before,
            before_sleep=_before_sleep,
            reraise=False,
        )

        try:
            for attempt in retrying:
                with attempt:
                    self._check_cancelled()
                    resource = self._opener(target)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            run.transition(ConnectorState.FAILED)
            _STATS.record_failure(target.name)
            log.error(
                f"[CONNECT FAILED] {target.name} after {run.attempts} attempt(s)",
                extra={"target": target.name, "attempts": run.attempts, "error": str(last_error)},
            )
            raise BackendUnavailable(target.name, run.attempts, last_error) from last_error
        except Exception as exc:
            run.transition(ConnectorState.FAILED)
            _STATS.record_failure(target.name)
            label = "CANCELLED" if isinstance(exc, Cancelled) else "CONNECT ERROR"
            log.error(f"[{label}] {target.name}: {exc}", extra={"target": target.name, "attempts": run.attempts})
            raise

        if self.cancel_event.is_set():
            self._closer(resource)
            run.transition(ConnectorState.FAILED)
            _STATS.record_failure(target.name)
            raise Cancelled(f"Connection to '{target.name}' cancelled")

        run.transition(ConnectorState.CONNECTED)
        _STATS.record_connect(target.name)
        log.info(
            f"[CONNECTED] {target.name}",
            extra={"target": target.name, "attempts": run.attempts},
        )
        return ConnectionHandle(target, resource, closer=self._closer, attempts=run.attempts)

    @contextmanager
    def session(self) -> Generator[ConnectionHandle, None, None]:
        """
        Acquire a handle for one logical operation and release it on every exit path.

        Example
        -------
            with connector.session() as handle:
                handle.resource.execute("SELECT 1")
        """
        handle = self.connect()
        try:
            yield handle
        finally:
            handle.close()

    def ensure_started(self, label: str, startup: Callable[[ConnectionHandle], None]) -> bool:
        """
        Run `startup` once per process for this target and label.

        Concurrent first callers block until the single startup run completes.
        Returns True if this call performed the startup.
        """
        latch = startup_latch(f"{self.target.key}:{label}")

        def _run() -> None:
            with self.session() as handle:
                startup(handle)
            log.info(f"[STARTED] {self.target.name}:{label}", extra={"target": self.target.name, "label": label})

        return latch.run_once(_run)


__all__ = [
    "TargetKind",
    "DEFAULT_RETRY_POLICY",
    "BackendTarget",
    "ConnectorState",
    "ConnectAttempt",
    "TargetStats",
    "ConnectorStats",
    "connector_stats",
    "StartupLatch",
    "startup_latch",
    "reset_startup_latches",
    "ConnectionHandle",
    "ResilientConnector",
]
