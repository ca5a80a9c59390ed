"""Transactional construction and amendment of PVAR archives."""

from collections.abc import Callable, Iterable
import os
from pathlib import Path
import tempfile
from typing import Any, Self

from attrs import define

from pyvider.telemetry import logger

from ..compression import CompressionStrategy, get_compression
from ..config import BuildConfiguration, SourcePath
from ..events import (
    AfterCommitEvent,
    BeforeAddPathEvent,
    BeforeCommitEvent,
    BeforeSetPathsEvent,
    EventDispatcher,
)
from ..exceptions import (
    ArchiveError,
    ConfigurationError,
    ExtensionFailure,
    InvalidPathError,
    PostCommitFailure,
)
from ..models import PRIMARY_PATH, EntryKind
from ..paths import is_reserved, is_within, normalize_path
from ..plugins import Plugin, resolve_plugin
from ..stubs import build_stub, read_entry_point, render_primary_script
from .codec import encode
from .container import Container

PluginResolver = Callable[[Any], Plugin]

# Marks an entry point that this build has not touched.
_UNCHANGED: Any = object()


@define(frozen=True, slots=True)
class StagedPath:
    path: str
    kind: EntryKind = EntryKind.FILE
    source: Path | None = None
    content: bytes | None = None
    mode: int = 0

    def read(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.source is None:
            return b""
        try:
            return self.source.read_bytes()
        except OSError as e:
            raise ConfigurationError(
                f"The source file '{self.source}' could not be read: {e}"
            ) from e


def _source_mode(path: Path) -> int:
    try:
        return path.stat().st_mode & 0o7777
    except OSError:
        return 0


class ArchiveBuilder:
    """
    Accumulates changes to a container and applies them in one atomic commit.

    Mutators only update the pending overlay; `commit()` is the only method
    that writes to disk.
    """

    def __init__(
        self,
        configuration: BuildConfiguration,
        container: Container | None = None,
        target: Path | str | None = None,
        dispatcher: EventDispatcher | None = None,
        plugin_resolver: PluginResolver = resolve_plugin,
    ) -> None:
        for source in configuration.paths:
            if not source.source.exists():
                raise ConfigurationError(
                    f"The source path '{source.source}' does not exist."
                )

        self.configuration = configuration
        self.dispatcher = dispatcher or EventDispatcher()
        self.target = Path(target) if target is not None else configuration.output
        self._plugin_resolver = plugin_resolver

        if container is None:
            container = Container(compression=get_compression(configuration.compression))
        self.container = container
        self._reset_pending()

    @classmethod
    def create(
        cls,
        configuration: BuildConfiguration,
        dispatcher: EventDispatcher | None = None,
    ) -> Self:
        """Starts a build of a new, empty archive."""
        return cls(configuration, dispatcher=dispatcher)

    @classmethod
    def open(
        cls,
        archive_path: Path | str,
        configuration: BuildConfiguration,
        dispatcher: EventDispatcher | None = None,
    ) -> Self:
        """Starts a build that amends an existing archive in place."""
        container = Container.open(archive_path)
        return cls(
            configuration,
            container=container,
            target=archive_path,
            dispatcher=dispatcher,
        )

    def _reset_pending(self) -> None:
        self._stub: bytes | None = self.container.stub
        self._compression: CompressionStrategy = self.container.compression
        self._compression_changed = False
        self._entry_point: str | None = _UNCHANGED
        self._additions: dict[str, StagedPath] = {}
        self._removals: list[str] = []

    # Plugins

    def register_plugins(self) -> Self:
        for reference in self.configuration.plugins:
            self.register_plugin(self._plugin_resolver(reference))
        return self

    def register_plugin(self, plugin: Plugin) -> Self:
        try:
            plugin.register(self.dispatcher, self.configuration, self.container)
        except ArchiveError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"The plugin {type(plugin).__name__} could not be registered: {e}"
            ) from e
        logger.debug("Registered plugin", plugin=type(plugin).__name__)
        return self

    # Pending changes

    def apply_configuration(self) -> Self:
        """Stages every setting of the build configuration."""
        self.set_bootstrap(build_stub(self.configuration))
        self.set_compression(self.configuration.compression)
        self.set_entry_point(self.configuration.main)
        if self.configuration.paths:
            self.add_paths(self.configuration.paths)
        return self

    def set_bootstrap(self, stub: bytes | str | None) -> Self:
        if isinstance(stub, str):
            stub = stub.encode("utf-8")
        self._stub = stub or None
        return self

    def set_compression(self, mode: str | CompressionStrategy) -> Self:
        self._compression = get_compression(mode)
        self._compression_changed = True
        return self

    def set_entry_point(self, path: str | None) -> Self:
        """Designates the entry point script; `None` removes the designation."""
        self._entry_point = self._user_path(path) if path else None
        return self

    def add_paths(self, sources: Iterable[SourcePath | str | Path]) -> Self:
        parsed = [SourcePath.parse(s, self.configuration.directory) for s in sources]
        event = self.dispatcher.dispatch(
            BeforeSetPathsEvent(builder=self, sources=parsed)
        )
        for source in event.sources:
            self._stage_source(source)
        return self

    def add_file(self, path: str, content: bytes | str, mode: int = 0) -> Self:
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._stage(StagedPath(self._user_path(path), content=bytes(content), mode=mode))
        return self

    def remove_path(self, path: str) -> Self:
        """Removes a path, and everything below it, from the archive."""
        target = normalize_path(path)
        for staged in list(self._additions):
            if is_within(staged, target):
                del self._additions[staged]
        self._removals.append(target)
        return self

    def pending_paths(self) -> list[str]:
        return list(self._additions)

    def _user_path(self, path: str) -> str:
        normalized = normalize_path(path)
        if is_reserved(normalized):
            raise InvalidPathError(f"The path '{normalized}' is reserved for archive use.")
        return normalized

    def _stage(self, staged: StagedPath) -> None:
        self._additions[staged.path] = staged

    def _stage_source(self, source: SourcePath) -> None:
        origin = source.source
        if not origin.exists():
            raise ConfigurationError(f"The source path '{origin}' does not exist.")

        alias = source.alias if source.alias is not None else origin.name
        at_root = alias in ("", ".", "/")
        if not origin.is_dir():
            if at_root:
                raise InvalidPathError(f"The file '{origin}' needs a non-empty alias.")
            self._stage(StagedPath(self._user_path(alias), source=origin, mode=_source_mode(origin)))
            return

        base = None if at_root else self._user_path(alias)
        staged_any = False
        for child in sorted(origin.rglob("*")):
            relative = child.relative_to(origin).as_posix()
            path = self._user_path(relative if base is None else f"{base}/{relative}")
            if child.is_dir():
                if not any(child.iterdir()):
                    self._stage(StagedPath(path, EntryKind.DIRECTORY, mode=_source_mode(child)))
                    staged_any = True
            elif child.is_file():
                self._stage(StagedPath(path, source=child, mode=_source_mode(child)))
                staged_any = True
        if not staged_any and base is not None:
            self._stage(StagedPath(base, EntryKind.DIRECTORY, mode=_source_mode(origin)))
        logger.debug("Staged source directory", source=str(origin), alias=base or "/")

    # Commit

    def _is_removed(self, path: str) -> bool:
        return any(is_within(path, removed) for removed in self._removals)

    def _resolve(self) -> Container:
        base = self.container
        resolved = Container(compression=self._compression, stub=self._stub)

        for entry in base.entries():
            if self._is_removed(entry.path):
                continue
            if entry.path == PRIMARY_PATH and self._entry_point is not _UNCHANGED:
                continue
            if (
                self._compression_changed
                and entry.is_file
                and entry.compression != self._compression.tag
            ):
                resolved.add_file(entry.path, base.get_content(entry.path), mode=entry.mode)
            else:
                resolved.add_stored(entry, base.stored_bytes(entry.path))

        for staged in self._additions.values():
            if staged.kind is EntryKind.DIRECTORY:
                resolved.add_directory(staged.path, mode=staged.mode)
                continue
            event = self.dispatcher.dispatch(
                BeforeAddPathEvent(
                    builder=self,
                    path=staged.path,
                    source=staged.source,
                    content=staged.read(),
                )
            )
            if event.skip:
                logger.debug("Extension skipped path", path=staged.path)
                continue
            if not isinstance(event.content, (bytes, bytearray)):
                raise ExtensionFailure(
                    f"Content for '{staged.path}' must be bytes, "
                    f"got {type(event.content).__name__}."
                )
            resolved.add_file(staged.path, event.content, mode=staged.mode)

        if self._entry_point is not _UNCHANGED and self._entry_point is not None:
            resolved.add_file(
                PRIMARY_PATH, render_primary_script(self._entry_point), mode=0o644
            )

        resolved.index.check_collisions()

        if resolved.has_path(PRIMARY_PATH):
            main = read_entry_point(resolved.get_content(PRIMARY_PATH))
            target = resolved.index.get(main) if main else None
            if target is None or not target.is_file:
                raise ConfigurationError(
                    f"The entry point '{main}' is not a file in the archive."
                )
        return resolved

    def _file_mode(self, target: Path, executable: bool) -> int:
        try:
            return target.stat().st_mode & 0o777
        except FileNotFoundError:
            return 0o755 if executable else 0o644

    def _write_atomically(self, target: Path, data: bytes, executable: bool) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        mode = self._file_mode(target, executable)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(temp_path, mode)
            os.replace(temp_path, target)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

    def commit(self, output: Path | str | None = None) -> Path:
        """Serializes the pending state and atomically replaces the destination."""
        target = Path(output) if output is not None else self.target
        logger.info("Committing archive", output=str(target))

        resolved = self._resolve()
        self.dispatcher.dispatch(
            BeforeCommitEvent(builder=self, container=resolved, output=target)
        )

        data = encode(resolved)
        self._write_atomically(target, data, executable=resolved.stub is not None)

        self.container = Container.decode(data, source=target)
        self.target = target
        self._reset_pending()
        logger.info(
            "Archive committed",
            output=str(target),
            entries=len(self.container.index),
            digest=self.container.digest.hex(),
        )

        try:
            self.dispatcher.dispatch(
                AfterCommitEvent(
                    builder=self, output=target, digest=self.container.digest
                )
            )
        except ExtensionFailure as e:
            raise PostCommitFailure(
                f"The archive was committed to '{target}', "
                f"but a post-commit extension failed: {e}"
            ) from e
        return target
