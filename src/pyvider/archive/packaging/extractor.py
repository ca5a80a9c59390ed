"""Unpacking of archive entries back into a directory tree."""

from collections.abc import Iterable
import os
from pathlib import Path

from pyvider.telemetry import logger

from ..exceptions import PathNotFoundError
from ..paths import is_within, normalize_path
from .container import Container


def _select(container: Container, paths: Iterable[str]) -> list[str]:
    all_paths = container.list_paths()
    wanted = [normalize_path(p) for p in paths]
    if not wanted:
        return all_paths

    for prefix in wanted:
        if not any(is_within(p, prefix) for p in all_paths):
            raise PathNotFoundError(f"Path not found in archive: '{prefix}'")
    return [p for p in all_paths if any(is_within(p, prefix) for prefix in wanted)]


def _apply_mode(path: Path, mode: int) -> None:
    # Permission bits are restored best effort; 0 means none were recorded.
    if not mode:
        return
    try:
        os.chmod(path, mode & 0o777)
    except OSError as e:
        logger.warning("Could not restore permissions", path=str(path), error=str(e))


def extract(
    container: Container, destination: Path | str, paths: Iterable[str] = ()
) -> list[Path]:
    """
    Writes entries below `destination`, optionally limited to `paths` and
    everything beneath them. Parent directories are created as needed, so
    directories never have to be stored explicitly.
    """
    root = Path(destination)
    root.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    directory_modes: list[tuple[Path, int]] = []

    for archive_path in _select(container, paths):
        entry = container.get_entry(archive_path)
        target = root.joinpath(*archive_path.split("/"))
        if entry.is_directory:
            target.mkdir(parents=True, exist_ok=True)
            directory_modes.append((target, entry.mode))
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(container.get_content(archive_path))
            _apply_mode(target, entry.mode)
        written.append(target)

    # Directory permissions last, so read-only directories can still be filled.
    for target, mode in directory_modes:
        _apply_mode(target, mode)

    logger.info("Extracted archive", destination=str(root), entries=len(written))
    return written
