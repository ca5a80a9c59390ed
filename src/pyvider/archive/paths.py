"""Archive path normalization and the ordered path index."""

from collections.abc import Iterator

from attrs import evolve

from .exceptions import InvalidPathError, PathCollision
from .models import RESERVED_DIRECTORY, Entry


def normalize_path(path: str) -> str:
    """Normalize an archive path to its canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments and paths that normalize to nothing
    """
    parts = [p for p in str(path).replace("\\", "/").split("/") if p not in ("", ".")]
    if ".." in parts:
        raise InvalidPathError(f"Path may not contain '..': {path!r}")
    if not parts:
        raise InvalidPathError(f"Path is empty after normalization: {path!r}")
    return "/".join(parts)


def is_reserved(path: str) -> bool:
    return path == RESERVED_DIRECTORY or path.startswith(RESERVED_DIRECTORY + "/")


def is_within(path: str, prefix: str) -> bool:
    """True when `path` is `prefix` itself or lies below it."""
    return path == prefix or path.startswith(prefix + "/")


def parent_directories(path: str) -> Iterator[str]:
    """Yields every ancestor directory of `path`, nearest first."""
    head = path
    while "/" in head:
        head = head.rsplit("/", 1)[0]
        yield head


class PathIndex:
    """Insertion-ordered mapping of normalized archive paths to entries."""

    def __init__(self, entries: "list[Entry] | None" = None) -> None:
        self._entries: dict[str, Entry] = {}
        for entry in entries or []:
            self.put(entry)

    def put(self, entry: Entry) -> None:
        path = normalize_path(entry.path)
        if path != entry.path:
            entry = evolve(entry, path=path)
        # Replacing keeps the original position so re-adding is deterministic.
        self._entries[path] = entry

    def remove(self, path: str) -> bool:
        return self._entries.pop(path, None) is not None

    def get(self, path: str) -> Entry | None:
        return self._entries.get(path)

    def has(self, path: str) -> bool:
        return path in self._entries

    def list_all(self) -> list[str]:
        return list(self._entries)

    def entries(self) -> list[Entry]:
        return list(self._entries.values())

    def check_collisions(self) -> None:
        """Rejects any file path that is also an ancestor of another path."""
        files = {p for p, e in self._entries.items() if e.is_file}
        for path in self._entries:
            for parent in parent_directories(path):
                if parent in files:
                    raise PathCollision(
                        f"The file '{parent}' collides with the directory "
                        f"required by '{path}'."
                    )

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
