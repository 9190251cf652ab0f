"""
Storage backend abstraction for socialpipe.

All paths are relative to the storage root and use forward slashes. Writes are
published atomically and never replace an existing object, so repeated pipeline
runs are additive.
"""
from __future__ import annotations

import contextlib
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List

from socialpipe.errors import InvalidArgument
from socialpipe.utils.logging import get_logger

log = get_logger(__name__)

FILE_SCHEME = "file://"


@dataclass(frozen=True)
class StorageEntry:
    """One listed object: `name` is the last path component, `path` is root-relative."""

    name: str
    path: str
    size: int
    is_dir: bool


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    Implementations must support existence checks, idempotent directory creation,
    atomic create-only writes, reads and listings relative to a root.
    """

    def __init__(self, base_path: str):
        self.base_path = base_path

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Return backend type identifier (e.g. 'local')."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if `path` exists."""

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create `path` and any parents. Creating an existing directory is a no-op."""

    @abstractmethod
    def open_for_write(self, path: str) -> contextlib.AbstractContextManager[BinaryIO]:
        """
        Open a new object for writing.

        The bytes become visible under `path` only when the context exits cleanly,
        after being flushed durably. Raises FileExistsError if `path` already exists;
        on error nothing is published.
        """

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        """Read a whole object."""

    @abstractmethod
    def list(self, path: str = "") -> List[StorageEntry]:
        """List the immediate children of a directory, sorted by name."""

    @abstractmethod
    def list_files(self, path: str = "", recursive: bool = False) -> List[StorageEntry]:
        """List files (not directories) under `path`, sorted by path."""

    def join_path(self, *parts: str) -> str:
        """
        Join path components using forward slashes, skipping empty parts.
        """
        clean_parts = [p.strip("/") for p in parts if p and p.strip("/")]
        return "/".join(clean_parts)

    def close(self) -> None:
        """Release backend resources. Local storage holds none."""


class LocalStorage(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, base_path: str):
        super().__init__(base_path)
        self.base_dir = Path(base_path).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        return "local"

    def _resolve_path(self, path: str) -> Path:
        return self.base_dir / path if path else self.base_dir

    def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()

    def mkdir(self, path: str) -> None:
        self._resolve_path(path).mkdir(parents=True, exist_ok=True)

    @contextlib.contextmanager
    def open_for_write(self, path: str) -> Iterator[BinaryIO]:
        full_path = self._resolve_path(path)
        if full_path.exists():
            raise FileExistsError(f"Refusing to overwrite existing object: {path}")
        full_path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=full_path.parent, prefix=f".{full_path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as stream:
                yield stream
                stream.flush()
                os.fsync(stream.fileno())
            # link() fails if the name was taken meanwhile, unlike rename()
            os.link(tmp_name, full_path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)

    def read_bytes(self, path: str) -> bytes:
        return self._resolve_path(path).read_bytes()

    def _entry(self, item: Path) -> StorageEntry:
        is_dir = item.is_dir()
        return StorageEntry(
            name=item.name,
            path=item.relative_to(self.base_dir).as_posix(),
            size=0 if is_dir else item.stat().st_size,
            is_dir=is_dir,
        )

    def list(self, path: str = "") -> List[StorageEntry]:
        full_path = self._resolve_path(path)
        if not full_path.is_dir():
            return []
        return [self._entry(item) for item in sorted(full_path.iterdir()) if not item.name.startswith(".")]

    def list_files(self, path: str = "", recursive: bool = False) -> List[StorageEntry]:
        full_path = self._resolve_path(path)
        if not full_path.is_dir():
            return []
        items = full_path.rglob("*") if recursive else full_path.iterdir()
        return sorted(
            (self._entry(item) for item in items if item.is_file() and not item.name.startswith(".")),
            key=lambda entry: entry.path,
        )


def open_storage(uri: str) -> StorageBackend:
    """
    Open the storage backend addressed by `uri`.

    Accepts `file://<path>` URIs and bare filesystem paths. Raises OSError if the
    root cannot be created (retried by the connector) and InvalidArgument for
    unsupported schemes (not retried).
    """
    if uri.startswith(FILE_SCHEME):
        root = uri[len(FILE_SCHEME):]
    elif "://" in uri:
        raise InvalidArgument(f"Unsupported storage URI scheme: {uri!r}")
    else:
        root = uri
    if not root:
        raise InvalidArgument("Storage URI has an empty path")
    storage = LocalStorage(root)
    log.debug("Opened storage", extra={"backend": storage.backend_type, "root": str(storage.base_dir)})
    return storage


__all__ = ["StorageEntry", "StorageBackend", "LocalStorage", "open_storage"]
