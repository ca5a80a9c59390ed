"""
Runs an executable archive.

The default stub re-executes `python -m pyvider.archive.bootstrap <archive>`,
which lands here: the archive is verified, unpacked into a temporary directory
and its primary script is run as `__main__`.
"""

from pathlib import Path
import runpy
import sys
import tempfile

from pyvider.telemetry import logger

from .exceptions import ArchiveError
from .models import PRIMARY_PATH
from .packaging.container import Container
from .packaging.extractor import extract


def run_archive(archive_path: Path | str, argv: list[str] | None = None) -> int:
    """Runs the entry point of an archive and returns its exit status."""
    container = Container.open(archive_path)
    if not container.has_path(PRIMARY_PATH):
        raise ArchiveError(f"The archive '{archive_path}' has no entry point.")

    with tempfile.TemporaryDirectory(prefix="pyvider_archive_") as temp_dir_str:
        extract(container, temp_dir_str)
        primary = Path(temp_dir_str, *PRIMARY_PATH.split("/"))
        logger.debug("Running archive entry point", archive=str(archive_path))

        saved_argv = sys.argv
        sys.argv = [str(archive_path), *(argv or [])]
        try:
            runpy.run_path(str(primary), run_name="__main__")
        except SystemExit as e:
            if e.code is None:
                return 0
            if isinstance(e.code, int):
                return e.code
            print(e.code, file=sys.stderr)
            return 1
        finally:
            sys.argv = saved_argv
    return 0


def main() -> None:
    if len(sys.argv) < 2:
        print("usage: python -m pyvider.archive.bootstrap ARCHIVE [ARGS...]", file=sys.stderr)
        sys.exit(2)
    try:
        status = run_archive(sys.argv[1], sys.argv[2:])
    except (ArchiveError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
