"""Tests for encoding and decoding the PVAR layout."""

import pytest

from conftest import reseal
from pyvider.archive.compression import BZIP2, DEFLATE, NONE, CompressionStrategy
from pyvider.archive.exceptions import CorruptFormat, IntegrityMismatch
from pyvider.archive.models import (
    STUB_END_MARKER,
    TRAILER_SIZE,
    ArchiveHeader,
    Entry,
    EntryKind,
)
from pyvider.archive.packaging.codec import encode, read_layout
from pyvider.archive.packaging.container import Container

STUB = b"#!/bin/sh\nexec python3 -m pyvider.archive.bootstrap \"$0\" \"$@\"\n"


def make_container(
    compression: CompressionStrategy = DEFLATE, stub: bytes | None = None
) -> Container:
    container = Container(compression=compression, stub=stub)
    container.add_file("a.txt", b"alpha " * 40, mode=0o644)
    container.add_directory("empty", mode=0o755)
    container.add_file("dir/b.bin", bytes(range(256)), mode=0o755)
    container.add_file("dir/zero.txt", b"")
    return container


@pytest.mark.parametrize("compression", [NONE, DEFLATE, BZIP2])
def test_round_trip(compression: CompressionStrategy) -> None:
    original = make_container(compression, stub=STUB)
    decoded = Container.decode(encode(original))

    assert decoded.list_paths() == original.list_paths()
    assert decoded.stub == STUB
    assert decoded.compression is compression
    for path in original.list_paths():
        before, after = original.get_entry(path), decoded.get_entry(path)
        assert (after.kind, after.mode, after.original_size, after.stored_size) == (
            before.kind,
            before.mode,
            before.original_size,
            before.stored_size,
        )
        if after.is_file:
            assert decoded.get_content(path) == original.get_content(path)


def test_encoding_is_deterministic() -> None:
    first = encode(make_container(stub=STUB))
    second = encode(make_container(stub=STUB))
    assert first == second
    assert encode(Container.decode(first)) == first


def test_offsets_are_laid_out_after_compression() -> None:
    layout = read_layout(encode(make_container()))
    files = [e for e in layout.entries if e.is_file]
    position = 0
    for entry in files:
        assert entry.offset == position
        position += entry.stored_size
    assert position == len(layout.content)
    assert next(e for e in layout.entries if e.path == "empty").kind is EntryKind.DIRECTORY


def test_archive_without_stub_starts_with_header() -> None:
    raw = encode(make_container())
    assert raw.startswith(b"PVAR")
    assert Container.decode(raw).stub is None


def test_every_flipped_byte_in_digested_region_is_detected() -> None:
    raw = encode(make_container(stub=STUB))
    start = len(STUB) + len(STUB_END_MARKER)
    end = len(raw) - TRAILER_SIZE
    for position in range(start, end):
        damaged = bytearray(raw)
        damaged[position] ^= 0xFF
        with pytest.raises(IntegrityMismatch):
            Container.decode(bytes(damaged))


def test_flipped_stub_byte_is_not_an_integrity_error() -> None:
    raw = bytearray(encode(make_container(stub=STUB)))
    raw[0] ^= 0xFF
    decoded = Container.decode(bytes(raw))
    assert decoded.stub[0] == STUB[0] ^ 0xFF
    assert decoded.get_content("a.txt") == b"alpha " * 40


def test_flipped_digest_is_an_integrity_error() -> None:
    raw = bytearray(encode(make_container()))
    raw[-TRAILER_SIZE] ^= 0x01
    with pytest.raises(IntegrityMismatch):
        Container.decode(bytes(raw))


def test_truncated_file_is_corrupt() -> None:
    raw = encode(make_container())
    with pytest.raises(CorruptFormat, match="EOF Magic"):
        Container.decode(raw[:-1])
    with pytest.raises(CorruptFormat, match="too short"):
        Container.decode(raw[:10])


def test_missing_stub_marker_is_corrupt() -> None:
    raw = encode(make_container())
    with pytest.raises(CorruptFormat, match="data marker"):
        Container.decode(b"#!/bin/sh\n" + raw)


def test_bad_header_magic_is_corrupt() -> None:
    data = b"NOPE" + ArchiveHeader(entry_count=0).pack()[4:]
    with pytest.raises(CorruptFormat, match="header magic"):
        Container.decode(reseal(data))


def test_truncated_index_is_corrupt() -> None:
    data = ArchiveHeader(entry_count=2).pack() + Entry(path="x").pack()
    with pytest.raises(CorruptFormat, match="Truncated index"):
        Container.decode(reseal(data))


def test_offset_outside_content_block_is_corrupt() -> None:
    entry = Entry(path="x", original_size=5, stored_size=5, offset=10)
    data = ArchiveHeader(entry_count=1).pack() + entry.pack() + b"12345"
    with pytest.raises(CorruptFormat, match="outside the content block"):
        Container.decode(reseal(data))


@pytest.mark.parametrize("paths", [["x", "x"], ["a//b"], ["../up"]])
def test_invalid_index_paths_are_corrupt(paths: list[str]) -> None:
    data = ArchiveHeader(entry_count=len(paths)).pack() + b"".join(
        Entry(path=p).pack() for p in paths
    )
    with pytest.raises(CorruptFormat):
        Container.decode(reseal(data))


def test_resealed_stub_is_read_back() -> None:
    data = ArchiveHeader(entry_count=0).pack()
    decoded = Container.decode(reseal(data, stub=b"preamble"))
    assert decoded.stub == b"preamble"
    assert decoded.list_paths() == []


def test_file_used_as_directory_in_index_is_corrupt() -> None:
    entries = [
        Entry(path="a", original_size=1, stored_size=1, offset=0),
        Entry(path="a/b", original_size=1, stored_size=1, offset=1),
    ]
    data = ArchiveHeader(entry_count=2).pack() + b"".join(e.pack() for e in entries) + b"xy"
    with pytest.raises(CorruptFormat, match="Conflicting paths"):
        Container.decode(reseal(data))
