"""Pytest fixtures for the entire pyvider-archive test suite."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from pyvider.archive.config import BuildConfiguration
from pyvider.archive.crypto import digest
from pyvider.archive.models import STUB_END_MARKER, ArchiveTrailer
from pyvider.archive.packaging.builder import ArchiveBuilder


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """
    Creates a small project tree:

        project/
            app/main.py
            app/util/helpers.py
            app/empty/
            README.txt
    """
    root = tmp_path / "project"
    (root / "app" / "util").mkdir(parents=True)
    (root / "app" / "empty").mkdir()
    (root / "app" / "main.py").write_text(
        "import sys\nprint('hello from', sys.argv[0])\n"
    )
    (root / "app" / "util" / "helpers.py").write_text("VERSION = '@version@'\n" * 20)
    (root / "README.txt").write_text("Read me.\n")
    return root


@pytest.fixture
def make_configuration(source_tree: Path) -> Callable[..., BuildConfiguration]:
    """A factory fixture producing configurations rooted at the source tree."""

    def _make(**settings: Any) -> BuildConfiguration:
        return BuildConfiguration.from_settings(source_tree, settings)

    return _make


@pytest.fixture
def built_archive(
    source_tree: Path, make_configuration: Callable[..., BuildConfiguration]
) -> Path:
    """Commits an archive of the sample tree with an entry point and a stub."""
    configuration = make_configuration(
        compression="deflate",
        main="app/main.py",
        output="dist/app.pvar",
        paths=["app", "README.txt"],
        shebang="#!/bin/sh",
    )
    return ArchiveBuilder.create(configuration).apply_configuration().commit()


def reseal(data: bytes, stub: bytes | None = None) -> bytes:
    """Wraps a raw header+index+content region with a valid trailer."""
    trailer = ArchiveTrailer(digest=digest(data), data_length=len(data))
    prefix = stub + STUB_END_MARKER if stub else b""
    return prefix + data + trailer.pack()
