import enum
import struct
from typing import Self

from attrs import define, field

from .exceptions import CorruptFormat, InvalidPathError

# Canonical PVAR v1 format constants
PVAR_FORMAT_VERSION: int = 0x0001
PVAR_RESERVED_FLAGS: int = 0x00
PVAR_HEADER_MAGIC: bytes = b"PVAR"
PVAR_EOF_MAGIC: bytes = b"!PVAR\x00\x00\x00"
STUB_END_MARKER: bytes = b"\n#__PVAR_DATA__\n"

# Reserved namespace for archive-managed entries.
RESERVED_DIRECTORY: str = ".pvar"
PRIMARY_PATH: str = f"{RESERVED_DIRECTORY}/primary.py"

DIGEST_SIZE: int = 32

# magic, format version, default compression tag, flags, entry count
HEADER_STRUCT_FORMAT = "<4sHBBI"
HEADER_SIZE = struct.calcsize(HEADER_STRUCT_FORMAT)

# path length prefix, followed by the UTF-8 path bytes
PATH_LENGTH_FORMAT = "<H"
PATH_LENGTH_SIZE = struct.calcsize(PATH_LENGTH_FORMAT)
MAX_PATH_LENGTH = 0xFFFF

# kind, mode, original size, stored size, compression tag, content offset
ENTRY_STRUCT_FORMAT = "<BIQQBQ"
ENTRY_STRUCT_SIZE = struct.calcsize(ENTRY_STRUCT_FORMAT)

# digest, length of header + index + content, EOF magic
TRAILER_STRUCT_FORMAT = "<32sQ8s"
TRAILER_SIZE = struct.calcsize(TRAILER_STRUCT_FORMAT)

if TRAILER_SIZE != 48:
    raise AssertionError(
        f"Calculated PVAR trailer size is {TRAILER_SIZE}, expected 48."
    )


class EntryKind(enum.IntEnum):
    FILE = 0
    DIRECTORY = 1


@define(frozen=True, slots=True)
class Entry:
    path: str
    kind: EntryKind = field(default=EntryKind.FILE, converter=EntryKind)
    mode: int = 0
    original_size: int = 0
    stored_size: int = 0
    compression: int = 0
    offset: int = 0

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    def pack(self) -> bytes:
        encoded_path = self.path.encode("utf-8")
        if len(encoded_path) > MAX_PATH_LENGTH:
            raise InvalidPathError(f"Path is too long to be stored: {self.path[:64]}...")
        return (
            struct.pack(PATH_LENGTH_FORMAT, len(encoded_path))
            + encoded_path
            + struct.pack(
                ENTRY_STRUCT_FORMAT,
                int(self.kind),
                self.mode,
                self.original_size,
                self.stored_size,
                self.compression,
                self.offset,
            )
        )

    @classmethod
    def unpack_from(cls, buffer: bytes | memoryview, position: int) -> tuple[Self, int]:
        """Reads one index record at `position`, returning it and the next position."""
        end = position + PATH_LENGTH_SIZE
        if end > len(buffer):
            raise CorruptFormat("Truncated index: missing path length.")
        (path_length,) = struct.unpack_from(PATH_LENGTH_FORMAT, buffer, position)

        path_end = end + path_length
        record_end = path_end + ENTRY_STRUCT_SIZE
        if record_end > len(buffer):
            raise CorruptFormat("Truncated index: entry record is incomplete.")

        try:
            path = bytes(buffer[end:path_end]).decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptFormat(f"Entry path is not valid UTF-8: {e}") from e

        kind, mode, original, stored, compression, offset = struct.unpack_from(
            ENTRY_STRUCT_FORMAT, buffer, path_end
        )
        try:
            entry_kind = EntryKind(kind)
        except ValueError as e:
            raise CorruptFormat(f"Unknown entry kind {kind} for '{path}'.") from e

        entry = cls(
            path=path,
            kind=entry_kind,
            mode=mode,
            original_size=original,
            stored_size=stored,
            compression=compression,
            offset=offset,
        )
        return entry, record_end


@define(frozen=True, slots=True)
class ArchiveHeader:
    entry_count: int
    compression: int = 0
    format_version: int = field(default=PVAR_FORMAT_VERSION)
    flags: int = field(default=PVAR_RESERVED_FLAGS)
    magic: bytes = field(default=PVAR_HEADER_MAGIC)

    def pack(self) -> bytes:
        return struct.pack(
            HEADER_STRUCT_FORMAT,
            self.magic,
            self.format_version,
            self.compression,
            self.flags,
            self.entry_count,
        )

    @classmethod
    def unpack(cls, buffer: bytes | memoryview) -> Self:
        if len(buffer) < HEADER_SIZE:
            raise CorruptFormat("Truncated index: header is incomplete.")

        magic, version, compression, flags, count = struct.unpack_from(
            HEADER_STRUCT_FORMAT, buffer, 0
        )
        if magic != PVAR_HEADER_MAGIC:
            raise CorruptFormat(f"Invalid PVAR header magic. Found {magic!r}.")
        if version != PVAR_FORMAT_VERSION:
            raise CorruptFormat(f"Unsupported PVAR format version 0x{version:04x}.")

        return cls(
            entry_count=count,
            compression=compression,
            format_version=version,
            flags=flags,
            magic=magic,
        )


@define(frozen=True, slots=True)
class ArchiveTrailer:
    digest: bytes
    data_length: int
    eof_magic: bytes = field(default=PVAR_EOF_MAGIC)

    def pack(self) -> bytes:
        return struct.pack(
            TRAILER_STRUCT_FORMAT, self.digest, self.data_length, self.eof_magic
        )

    @classmethod
    def unpack(cls, buffer: bytes | memoryview) -> Self:
        if len(buffer) != TRAILER_SIZE:
            raise CorruptFormat(f"Buffer size {len(buffer)} != {TRAILER_SIZE}")

        digest, data_length, eof_magic = struct.unpack(TRAILER_STRUCT_FORMAT, buffer)
        if eof_magic != PVAR_EOF_MAGIC:
            raise CorruptFormat(f"Invalid PVAR EOF Magic. Found {eof_magic!r}.")

        return cls(digest=digest, data_length=data_length, eof_magic=eof_magic)

    @classmethod
    def read_from(cls, raw: bytes | memoryview) -> Self:
        """Parses the trailer at the end of a complete archive image."""
        if len(raw) < TRAILER_SIZE:
            raise CorruptFormat(
                f"File is too short to be a PVAR archive ({len(raw)} bytes)."
            )
        trailer = cls.unpack(raw[-TRAILER_SIZE:])
        if trailer.data_length < HEADER_SIZE or trailer.data_length > len(raw) - TRAILER_SIZE:
            raise CorruptFormat(
                f"Trailer data length {trailer.data_length} is out of range."
            )
        return trailer

    def data_start(self, total_size: int) -> int:
        return total_size - TRAILER_SIZE - self.data_length
