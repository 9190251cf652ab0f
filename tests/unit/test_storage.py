from __future__ import annotations

from pathlib import Path

import pytest

from socialpipe.errors import InvalidArgument
from socialpipe.infrastructure.storage import LocalStorage, open_storage


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "root"))


def test_open_storage_accepts_file_uri_and_bare_path(tmp_path: Path) -> None:
    assert open_storage(f"file://{tmp_path / 'a'}").base_dir == (tmp_path / "a").resolve()
    assert open_storage(str(tmp_path / "b")).base_dir == (tmp_path / "b").resolve()


@pytest.mark.parametrize("uri", ["s3://bucket/prefix", "file://", ""])
def test_open_storage_rejects_unsupported_uris(uri: str) -> None:
    with pytest.raises(InvalidArgument):
        open_storage(uri)


def test_mkdir_is_idempotent(storage: LocalStorage) -> None:
    storage.mkdir("a/b")
    storage.mkdir("a/b")
    assert storage.exists("a/b")


def test_write_publishes_only_on_clean_exit(storage: LocalStorage) -> None:
    with pytest.raises(RuntimeError):
        with storage.open_for_write("x/data.json") as stream:
            stream.write(b"partial")
            raise RuntimeError("interrupted")

    assert not storage.exists("x/data.json")
    assert storage.list_files("x") == []


def test_write_never_overwrites(storage: LocalStorage) -> None:
    with storage.open_for_write("data.json") as stream:
        stream.write(b"first\n")

    with pytest.raises(FileExistsError):
        with storage.open_for_write("data.json") as stream:
            stream.write(b"second\n")

    assert storage.read_bytes("data.json") == b"first\n"


def test_listing_hides_temp_files_and_sorts(storage: LocalStorage) -> None:
    for name in ("b.json", "a.json"):
        with storage.open_for_write(f"dir/{name}") as stream:
            stream.write(b"{}\n")
    (storage.base_dir / "dir" / ".a.json.123.tmp").write_bytes(b"junk")
    storage.mkdir("dir/sub")

    entries = storage.list("dir")

    assert [e.name for e in entries] == ["a.json", "b.json", "sub"]
    assert [e.is_dir for e in entries] == [False, False, True]
    assert entries[0].size == 3
    assert [e.path for e in storage.list_files("dir")] == ["dir/a.json", "dir/b.json"]


def test_join_path_skips_empty_parts(storage: LocalStorage) -> None:
    assert storage.join_path("social/", "", "/posts", "year=2024") == "social/posts/year=2024"
