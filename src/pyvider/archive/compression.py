"""
Compression strategies applied to the stored bytes of archive entries.

Every entry records the tag of the strategy that produced its stored bytes,
so reading an archive never depends on the archive-wide default.
"""

import bz2
from collections.abc import Callable
import lzma
import zlib

from attrs import define, field

from .exceptions import ConfigurationError, DecompressionFailure


def _identity(data: bytes) -> bytes:
    return data


def _deflate(data: bytes) -> bytes:
    return zlib.compress(data, 6)


def _bzip2(data: bytes) -> bytes:
    return bz2.compress(data, 9)


def _lzma(data: bytes) -> bytes:
    return lzma.compress(data, format=lzma.FORMAT_XZ)


@define(frozen=True, slots=True)
class CompressionStrategy:
    name: str
    tag: int
    compressor: Callable[[bytes], bytes] = field(repr=False)
    decompressor: Callable[[bytes], bytes] = field(repr=False)
    aliases: tuple[str, ...] = ()

    def compress(self, data: bytes) -> bytes:
        return self.compressor(bytes(data))

    def decompress(self, data: bytes) -> bytes:
        try:
            return self.decompressor(bytes(data))
        except (zlib.error, lzma.LZMAError, OSError, ValueError, EOFError) as e:
            raise DecompressionFailure(
                f"Stored bytes could not be decompressed with '{self.name}': {e}"
            ) from e


NONE = CompressionStrategy("none", 0, _identity, _identity)
DEFLATE = CompressionStrategy(
    "deflate", 1, _deflate, zlib.decompress, aliases=("gzip", "zlib")
)
BZIP2 = CompressionStrategy("bzip2", 2, _bzip2, bz2.decompress, aliases=("bz2",))
LZMA = CompressionStrategy("lzma", 3, _lzma, lzma.decompress, aliases=("xz",))

_BY_NAME: dict[str, CompressionStrategy] = {}
_BY_TAG: dict[int, CompressionStrategy] = {}


def register_compression(strategy: CompressionStrategy) -> None:
    """Makes a strategy available by name, by its aliases, and by tag."""
    existing = _BY_TAG.get(strategy.tag)
    if existing is not None and existing.name != strategy.name:
        raise ConfigurationError(
            f"Compression tag {strategy.tag} is already used by '{existing.name}'."
        )
    _BY_TAG[strategy.tag] = strategy
    for name in (strategy.name, *strategy.aliases):
        _BY_NAME[name.lower()] = strategy


for _strategy in (NONE, DEFLATE, BZIP2, LZMA):
    register_compression(_strategy)


def available_compressions() -> list[str]:
    return sorted({s.name for s in _BY_NAME.values()})


def get_compression(name: "str | CompressionStrategy") -> CompressionStrategy:
    if isinstance(name, CompressionStrategy):
        return name
    try:
        return _BY_NAME[str(name).lower()]
    except KeyError:
        raise ConfigurationError(
            f"The compression mode '{name}' is not valid. "
            f"Choose one of: {', '.join(available_compressions())}."
        ) from None


def get_compression_by_tag(tag: int) -> CompressionStrategy:
    try:
        return _BY_TAG[tag]
    except KeyError:
        raise DecompressionFailure(f"Unknown compression tag {tag}.") from None
