# pyvider/src/pyvider/archive/__init__.py
"""
This package builds, inspects, amends, verifies and extracts Pyvider Archive
(PVAR) files: single-file containers bundling a tree of files, optionally
made directly executable by a bootstrap stub.
"""

from .config import BuildConfiguration, SourcePath, load_configuration
from .events import EventDispatcher
from .exceptions import (
    ArchiveError,
    ConfigurationError,
    CorruptFormat,
    DecompressionFailure,
    ExtensionFailure,
    IntegrityMismatch,
    PathCollision,
)
from .models import PRIMARY_PATH, PVAR_EOF_MAGIC, PVAR_FORMAT_VERSION, Entry, EntryKind
from .packaging.builder import ArchiveBuilder
from .packaging.container import Container
from .packaging.extractor import extract

__all__ = [
    "PRIMARY_PATH",
    "PVAR_EOF_MAGIC",
    "PVAR_FORMAT_VERSION",
    "ArchiveBuilder",
    "ArchiveError",
    "BuildConfiguration",
    "ConfigurationError",
    "Container",
    "CorruptFormat",
    "DecompressionFailure",
    "Entry",
    "EntryKind",
    "EventDispatcher",
    "ExtensionFailure",
    "IntegrityMismatch",
    "PathCollision",
    "SourcePath",
    "extract",
    "load_configuration",
]
