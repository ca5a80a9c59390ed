"""Translation between containers and the PVAR on-disk byte layout."""

from typing import TYPE_CHECKING

from attrs import define, evolve

from pyvider.telemetry import logger

from ..crypto import digest, verify_digest
from ..exceptions import CorruptFormat, InvalidPathError, PathCollision
from ..models import (
    HEADER_SIZE,
    STUB_END_MARKER,
    TRAILER_SIZE,
    ArchiveHeader,
    ArchiveTrailer,
    Entry,
)
from ..paths import PathIndex, normalize_path

if TYPE_CHECKING:
    from .container import Container


@define(frozen=True, slots=True)
class ArchiveLayout:
    """The parsed, still-compressed regions of an archive image."""

    stub: bytes | None
    header: ArchiveHeader
    entries: list[Entry]
    content: memoryview
    digest: bytes


def _read_stub(region: memoryview) -> bytes | None:
    if not len(region):
        return None
    if bytes(region[-len(STUB_END_MARKER) :]) != STUB_END_MARKER:
        raise CorruptFormat("Stub region is not terminated by the PVAR data marker.")
    return bytes(region[: -len(STUB_END_MARKER)])


def read_layout(raw: bytes | memoryview) -> ArchiveLayout:
    """
    Parses an archive image without decompressing any entry.

    The trailer digest is checked before the index is parsed so that damage
    inside the digested region is always reported as an integrity mismatch.
    """
    view = memoryview(raw)
    trailer = ArchiveTrailer.read_from(view)
    start = trailer.data_start(len(view))
    data = view[start : len(view) - TRAILER_SIZE]
    verify_digest(data, trailer.digest)

    header = ArchiveHeader.unpack(data)
    position = HEADER_SIZE
    entries: list[Entry] = []
    seen: set[str] = set()
    for _ in range(header.entry_count):
        entry, position = Entry.unpack_from(data, position)
        try:
            normalized = normalize_path(entry.path)
        except InvalidPathError as e:
            raise CorruptFormat(f"Invalid entry path in index: {e}") from e
        if normalized != entry.path:
            raise CorruptFormat(f"Entry path is not normalized: {entry.path!r}")
        if entry.path in seen:
            raise CorruptFormat(f"Duplicate entry path in index: {entry.path!r}")
        seen.add(entry.path)
        entries.append(entry)

    try:
        PathIndex(entries).check_collisions()
    except PathCollision as e:
        raise CorruptFormat(f"Conflicting paths in index: {e}") from e

    content = data[position:]
    for entry in entries:
        if entry.is_directory and (entry.stored_size or entry.original_size):
            raise CorruptFormat(f"Directory entry '{entry.path}' declares content.")
        if entry.offset + entry.stored_size > len(content):
            raise CorruptFormat(
                f"Entry '{entry.path}' (offset {entry.offset}, size "
                f"{entry.stored_size}) falls outside the content block "
                f"of {len(content)} bytes."
            )

    logger.debug(
        "Decoded PVAR layout",
        entries=len(entries),
        content_bytes=len(content),
        stub_bytes=start,
    )
    return ArchiveLayout(
        stub=_read_stub(view[:start]),
        header=header,
        entries=entries,
        content=content,
        digest=trailer.digest,
    )


def encode(container: "Container") -> bytes:
    """
    Serializes a container. The same container state always yields the same
    bytes: entries keep index order and nothing time-dependent is written.
    """
    laid_out: list[Entry] = []
    blocks: list[bytes] = []
    offset = 0
    # Stored sizes must all be known before any offset is assigned.
    for entry in container.entries():
        stored = container.stored_bytes(entry.path) if entry.is_file else b""
        blocks.append(stored)
        laid_out.append(
            evolve(entry, stored_size=len(stored), offset=offset if entry.is_file else 0)
        )
        offset += len(stored)

    header = ArchiveHeader(
        entry_count=len(laid_out), compression=container.compression.tag
    )
    data = b"".join([header.pack(), *(e.pack() for e in laid_out), *blocks])
    trailer = ArchiveTrailer(digest=digest(data), data_length=len(data))

    prefix = container.stub + STUB_END_MARKER if container.stub else b""
    logger.debug(
        "Encoded PVAR archive",
        entries=len(laid_out),
        content_bytes=offset,
        stub_bytes=len(prefix),
    )
    return prefix + data + trailer.pack()
