class ArchiveError(Exception):
    pass


class CorruptFormat(ArchiveError):
    pass


class IntegrityMismatch(ArchiveError):
    pass


class DecompressionFailure(ArchiveError):
    pass


class PathCollision(ArchiveError):
    pass


class PathNotFoundError(ArchiveError, KeyError):
    def __str__(self) -> str:
        # KeyError repr-quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""


class ConfigurationError(ArchiveError):
    pass


class InvalidPathError(ConfigurationError, ValueError):
    pass


class ExtensionFailure(ArchiveError):
    pass


class PostCommitFailure(ExtensionFailure):
    pass
