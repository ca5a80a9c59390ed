"""Tests for path normalization and the path index."""

import pytest

from pyvider.archive.exceptions import InvalidPathError, PathCollision
from pyvider.archive.models import Entry, EntryKind
from pyvider.archive.paths import (
    PathIndex,
    is_reserved,
    is_within,
    normalize_path,
    parent_directories,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("a/b/c.txt", "a/b/c.txt"),
        ("/a//b/./c.txt/", "a/b/c.txt"),
        ("a\\b\\c.txt", "a/b/c.txt"),
        ("./x", "x"),
    ],
)
def test_normalize_path(raw: str, expected: str) -> None:
    assert normalize_path(raw) == expected


@pytest.mark.parametrize("raw", ["", "/", "./.", "a/../b", ".."])
def test_normalize_path_rejects(raw: str) -> None:
    with pytest.raises(InvalidPathError):
        normalize_path(raw)


def test_path_helpers() -> None:
    assert is_within("a/b", "a")
    assert is_within("a", "a")
    assert not is_within("ab", "a")
    assert list(parent_directories("a/b/c")) == ["a/b", "a"]
    assert is_reserved(".pvar/primary.py")
    assert not is_reserved(".pvarx/file")


def test_index_operations_keep_insertion_order() -> None:
    index = PathIndex()
    index.put(Entry(path="b.txt", original_size=1))
    index.put(Entry(path="a.txt", original_size=2))
    index.put(Entry(path="b.txt", original_size=3))

    assert index.list_all() == ["b.txt", "a.txt"]
    assert index.get("b.txt").original_size == 3
    assert index.has("a.txt")
    assert "a.txt" in index
    assert index.get("missing") is None
    assert len(index) == 2

    assert index.remove("a.txt") is True
    assert index.remove("a.txt") is False
    assert list(index) == ["b.txt"]


def test_index_normalizes_keys() -> None:
    index = PathIndex([Entry(path="/dir//file.txt")])
    assert index.list_all() == ["dir/file.txt"]
    assert index.get("dir/file.txt").path == "dir/file.txt"


def test_collision_between_file_and_directory() -> None:
    index = PathIndex([Entry(path="p"), Entry(path="p/q")])
    with pytest.raises(PathCollision, match="'p'"):
        index.check_collisions()


def test_no_collision_for_directory_entries_and_siblings() -> None:
    index = PathIndex(
        [
            Entry(path="p", kind=EntryKind.DIRECTORY),
            Entry(path="p/q"),
            Entry(path="pq"),
            Entry(path="p/r/s"),
        ]
    )
    index.check_collisions()
