"""
Build settings for archives.

Settings are read from the `[tool.pyvider.archive]` table of a
`pyproject.toml` manifest, for example:

    [tool.pyvider.archive]
    bootstrap = "bin/bootstrap.sh"
    compression = "deflate"
    main = "app/main.py"
    output = "dist/app.pvar"
    paths = ["app", { path = "vendor/lib", alias = "lib" }]
    plugins = ["replace"]
    shebang = "#!/bin/sh"

    [tool.pyvider.archive.replace.all]
    "@version@" = "1.0.0"
"""

from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
import tomllib
from typing import Any, Self

from attrs import define, field

from .compression import get_compression
from .exceptions import ConfigurationError

DEFAULT_SETTINGS: Mapping[str, Any] = MappingProxyType(
    {
        "bootstrap": None,
        "compression": "none",
        "main": None,
        "output": "project.pvar",
        "paths": (),
        "plugins": (),
        "shebang": None,
    }
)


@define(frozen=True, slots=True)
class SourcePath:
    source: Path = field(converter=Path)
    alias: str | None = None

    @classmethod
    def parse(cls, value: Any, directory: Path) -> Self:
        """Accepts a bare path string or a `{path, alias}` table."""
        if isinstance(value, SourcePath):
            return cls(directory / value.source, value.alias)
        if isinstance(value, (str, Path)):
            return cls(directory / value)
        if isinstance(value, Mapping) and "path" in value:
            alias = value.get("alias")
            if alias is not None and not isinstance(alias, str):
                raise ConfigurationError(f"Path alias must be a string: {alias!r}")
            return cls(directory / str(value["path"]), alias)
        raise ConfigurationError(
            f"Source paths must be strings or {{path, alias}} tables, got {value!r}."
        )


def _optional_path(directory: Path, value: Any) -> Path | None:
    return None if value in (None, "") else directory / str(value)


@define(frozen=True, slots=True)
class BuildConfiguration:
    directory: Path
    bootstrap: Path | None
    compression: str
    main: str | None
    output: Path
    paths: tuple[SourcePath, ...]
    plugins: tuple[str, ...]
    shebang: str | None
    settings: Mapping[str, Any] = field(factory=dict, repr=False)

    @classmethod
    def from_settings(cls, directory: Path | str, settings: Mapping[str, Any] | None = None) -> Self:
        """Merges `settings` over the defaults and validates the result."""
        base_dir = Path(directory)
        merged = {**DEFAULT_SETTINGS, **(settings or {})}

        compression = str(merged["compression"])
        get_compression(compression)

        paths = merged["paths"]
        if isinstance(paths, (str, Mapping)) or not hasattr(paths, "__iter__"):
            raise ConfigurationError("The 'paths' setting must be a list.")
        plugins = merged["plugins"]
        if isinstance(plugins, str) or not hasattr(plugins, "__iter__"):
            raise ConfigurationError("The 'plugins' setting must be a list.")

        return cls(
            directory=base_dir,
            bootstrap=_optional_path(base_dir, merged["bootstrap"]),
            compression=compression,
            main=merged["main"] or None,
            output=base_dir / str(merged["output"]),
            paths=tuple(SourcePath.parse(p, base_dir) for p in paths),
            plugins=tuple(str(p) for p in plugins),
            shebang=merged["shebang"] or None,
            settings=MappingProxyType(dict(merged)),
        )

    @classmethod
    def default(cls, directory: Path | str = ".") -> Self:
        return cls.from_settings(directory, {})

    def get_settings(self, name: str, default: Any = None) -> Any:
        """Returns a raw settings table, typically one owned by a plugin."""
        return self.settings.get(name, default)

    def read_bootstrap(self) -> bytes | None:
        if self.bootstrap is None:
            return None
        try:
            return self.bootstrap.read_bytes()
        except OSError as e:
            raise ConfigurationError(
                f"The bootstrap script '{self.bootstrap}' could not be read: {e}"
            ) from e


def load_configuration(manifest_path: Path | str) -> BuildConfiguration:
    """Reads `[tool.pyvider.archive]` from a pyproject.toml manifest."""
    manifest = Path(manifest_path)
    try:
        with manifest.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Manifest not found at: {manifest}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Manifest '{manifest}' is not valid TOML: {e}") from e

    archive_conf = data.get("tool", {}).get("pyvider", {}).get("archive")
    if archive_conf is None:
        raise ConfigurationError(
            "A [tool.pyvider.archive] section was not found in pyproject.toml."
        )
    return BuildConfiguration.from_settings(manifest.parent, archive_conf)
