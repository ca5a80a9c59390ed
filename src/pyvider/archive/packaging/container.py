"""Read access to PVAR archives and the in-memory container model."""

from pathlib import Path
import threading
from typing import Self

from attrs import evolve

from pyvider.telemetry import logger

from ..compression import NONE, CompressionStrategy, get_compression_by_tag
from ..exceptions import (
    ArchiveError,
    DecompressionFailure,
    InvalidPathError,
    PathNotFoundError,
)
from ..models import PRIMARY_PATH, Entry, EntryKind
from ..paths import PathIndex, normalize_path
from .codec import encode, read_layout


class Container:
    """
    An archive held in memory: its path index, stub, default compression and
    the stored bytes of every entry. Content is decompressed on first access
    and cached for the lifetime of the container.
    """

    def __init__(
        self,
        compression: CompressionStrategy = NONE,
        stub: bytes | None = None,
        index: PathIndex | None = None,
        content: memoryview | bytes = b"",
        digest: bytes | None = None,
        source: Path | None = None,
    ) -> None:
        self.compression = compression
        self.stub = stub or None
        self.digest = digest
        self.source = source
        self._index = index if index is not None else PathIndex()
        self._content = memoryview(content)
        self._fresh: dict[str, bytes] = {}
        self._cache: dict[str, bytes] = {}
        self._cache_lock = threading.Lock()
        self._entry_locks: dict[str, threading.Lock] = {}

    @classmethod
    def decode(cls, raw: bytes | memoryview, source: Path | None = None) -> Self:
        layout = read_layout(raw)
        try:
            compression = get_compression_by_tag(layout.header.compression)
        except DecompressionFailure:
            logger.warning(
                "Archive default compression is not registered; using 'none' for new entries",
                tag=layout.header.compression,
            )
            compression = NONE
        return cls(
            compression=compression,
            stub=layout.stub,
            index=PathIndex(layout.entries),
            content=layout.content,
            digest=layout.digest,
            source=source,
        )

    @classmethod
    def open(cls, path: Path | str) -> Self:
        """Opens and verifies an archive file."""
        archive_path = Path(path)
        if not archive_path.is_file():
            raise FileNotFoundError(f"Archive not found at: {archive_path}")
        container = cls.decode(archive_path.read_bytes(), source=archive_path)
        logger.info(
            "Opened archive", path=str(archive_path), entries=len(container._index)
        )
        return container

    def encode(self) -> bytes:
        return encode(self)

    # Read access

    def _lookup(self, path: str) -> Entry | None:
        try:
            return self._index.get(normalize_path(path))
        except InvalidPathError:
            return None

    def has_path(self, path: str) -> bool:
        return self._lookup(path) is not None

    def get_entry(self, path: str) -> Entry:
        entry = self._lookup(path)
        if entry is None:
            raise PathNotFoundError(f"Path not found in archive: '{path}'")
        return entry

    def list_paths(self) -> list[str]:
        return self._index.list_all()

    def entries(self) -> list[Entry]:
        return self._index.entries()

    @property
    def index(self) -> PathIndex:
        return self._index

    @property
    def primary(self) -> bytes | None:
        """The primary script, if the archive designates an entry point."""
        if not self.has_path(PRIMARY_PATH):
            return None
        return self.get_content(PRIMARY_PATH)

    def stored_bytes(self, path: str) -> bytes:
        """Returns the bytes of an entry exactly as stored (still compressed)."""
        entry = self.get_entry(path)
        fresh = self._fresh.get(entry.path)
        if fresh is not None:
            return fresh
        return bytes(self._content[entry.offset : entry.offset + entry.stored_size])

    def _lock_for(self, path: str) -> threading.Lock:
        with self._cache_lock:
            return self._entry_locks.setdefault(path, threading.Lock())

    def get_content(self, path: str) -> bytes:
        entry = self.get_entry(path)
        if entry.is_directory:
            raise ArchiveError(f"'{path}' is a directory and has no content.")
        path = entry.path

        cached = self._cache.get(path)
        if cached is not None:
            return cached

        with self._lock_for(path):
            cached = self._cache.get(path)
            if cached is None:
                strategy = get_compression_by_tag(entry.compression)
                cached = strategy.decompress(self.stored_bytes(path))
                if len(cached) != entry.original_size:
                    raise DecompressionFailure(
                        f"Entry '{path}' decompressed to {len(cached)} bytes, "
                        f"expected {entry.original_size}."
                    )
                self._cache[path] = cached
        return cached

    # Mutation, used by the builder while it resolves a new container

    def add_file(
        self,
        path: str,
        content: bytes,
        mode: int = 0,
        compression: CompressionStrategy | None = None,
    ) -> Entry:
        strategy = compression or self.compression
        path = normalize_path(path)
        content = bytes(content)
        stored = strategy.compress(content)
        entry = Entry(
            path=path,
            kind=EntryKind.FILE,
            mode=mode,
            original_size=len(content),
            stored_size=len(stored),
            compression=strategy.tag,
        )
        self._replace(entry, stored)
        self._cache[path] = content
        return entry

    def add_directory(self, path: str, mode: int = 0) -> Entry:
        entry = Entry(path=normalize_path(path), kind=EntryKind.DIRECTORY, mode=mode)
        self._replace(entry, None)
        return entry

    def add_stored(self, entry: Entry, stored: bytes) -> Entry:
        """Adds an entry whose bytes are already in their stored form."""
        entry = evolve(entry, offset=0, stored_size=len(stored))
        self._replace(entry, stored if entry.is_file else None)
        return entry

    def remove(self, path: str) -> bool:
        entry = self._lookup(path)
        if entry is None:
            return False
        path = entry.path
        self._fresh.pop(path, None)
        self._cache.pop(path, None)
        return self._index.remove(path)

    def _replace(self, entry: Entry, stored: bytes | None) -> None:
        self._cache.pop(entry.path, None)
        if stored is None:
            self._fresh.pop(entry.path, None)
        else:
            self._fresh[entry.path] = stored
        self._index.put(entry)

    def get_info(self) -> str:
        """Returns a human-readable string of the archive information."""
        files = [e for e in self.entries() if e.is_file]
        original = sum(e.original_size for e in files)
        stored = sum(e.stored_size for e in files)
        return (
            f"PVAR Archive Information:\n"
            f"  Source: {self.source or '<memory>'}\n"
            f"  Default Compression: {self.compression.name}\n"
            f"  Stub Size: {len(self.stub or b'')} bytes\n"
            f"  Entry Point: {'yes' if self.has_path(PRIMARY_PATH) else 'no'}\n"
            f"  Entries: {len(self._index)} ({len(files)} files)\n"
            f"  Content Size: {original} bytes ({stored} bytes stored)\n"
            f"  Digest: {self.digest.hex() if self.digest else '<not serialized>'}"
        )
