"""Tests for unpacking archives into a directory tree."""

import os
from pathlib import Path
import stat

import pytest

from pyvider.archive.exceptions import InvalidPathError, PathNotFoundError
from pyvider.archive.packaging.codec import encode
from pyvider.archive.packaging.container import Container
from pyvider.archive.packaging.extractor import extract


@pytest.fixture
def container() -> Container:
    built = Container()
    built.add_file("bin/tool", b"#!/bin/sh\necho tool\n", mode=0o755)
    built.add_file("lib/data.txt", b"data", mode=0o644)
    built.add_file("lib/deep/more.txt", b"more")
    built.add_directory("var/empty", mode=0o750)
    return Container.decode(encode(built))


def test_extract_everything(container: Container, tmp_path: Path) -> None:
    written = extract(container, tmp_path / "out")

    root = tmp_path / "out"
    assert written == [
        root / "bin" / "tool",
        root / "lib" / "data.txt",
        root / "lib" / "deep" / "more.txt",
        root / "var" / "empty",
    ]
    assert (root / "bin" / "tool").read_bytes() == b"#!/bin/sh\necho tool\n"
    assert (root / "lib" / "deep" / "more.txt").read_bytes() == b"more"
    assert (root / "var" / "empty").is_dir()


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
def test_extract_restores_permissions(container: Container, tmp_path: Path) -> None:
    extract(container, tmp_path)
    assert stat.S_IMODE((tmp_path / "bin" / "tool").stat().st_mode) == 0o755
    assert stat.S_IMODE((tmp_path / "lib" / "data.txt").stat().st_mode) == 0o644
    assert stat.S_IMODE((tmp_path / "var" / "empty").stat().st_mode) == 0o750


def test_extract_selected_paths(container: Container, tmp_path: Path) -> None:
    written = extract(container, tmp_path, ["lib/"])
    assert written == [tmp_path / "lib" / "data.txt", tmp_path / "lib" / "deep" / "more.txt"]
    assert not (tmp_path / "bin").exists()


def test_extract_unknown_path(container: Container, tmp_path: Path) -> None:
    with pytest.raises(PathNotFoundError):
        extract(container, tmp_path, ["li"])


def test_extract_rejects_escaping_selection(container: Container, tmp_path: Path) -> None:
    with pytest.raises(InvalidPathError):
        extract(container, tmp_path, ["../etc"])
