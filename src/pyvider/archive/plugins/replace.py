"""
Placeholder substitution in staged file contents.

Settings are read from the `replace` table of the build configuration:

    [tool.pyvider.archive.replace.all]
    "@version@" = "1.2.3"

    [tool.pyvider.archive.replace.glob."*.py"]
    "@name@" = "example"

    [tool.pyvider.archive.replace.regex."^bin/"]
    "@python@" = "/usr/bin/python3"

`all` applies to every file, `glob` to paths matching an fnmatch pattern and
`regex` to paths matching a regular expression.
"""

from collections.abc import Mapping
import fnmatch
import re
from typing import TYPE_CHECKING, Any

from pyvider.telemetry import logger

from ..events import BeforeAddPathEvent, Listener
from ..exceptions import ConfigurationError

if TYPE_CHECKING:
    from ..config import BuildConfiguration
    from ..events import EventDispatcher
    from ..packaging.container import Container

Replacements = dict[bytes, bytes]


def _as_table(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"The replace setting '{where}' must be a table.")
    return value


def _as_replacements(table: Any, where: str) -> Replacements:
    replacements: Replacements = {}
    for search, replace in _as_table(table, where).items():
        if not str(search):
            raise ConfigurationError(f"Empty search token in replace setting '{where}'.")
        replacements[str(search).encode("utf-8")] = str(replace).encode("utf-8")
    return replacements


class ReplaceSubscriber:
    """Substitutes configured tokens in the content of matching files."""

    def __init__(self, settings: Mapping[str, Any] | None = None) -> None:
        settings = settings or {}
        self.all: Replacements = _as_replacements(settings.get("all", {}), "all")
        self.glob: list[tuple[str, Replacements]] = [
            (pattern, _as_replacements(table, f"glob.{pattern}"))
            for pattern, table in _as_table(settings.get("glob", {}), "glob").items()
        ]
        self.regex: list[tuple[re.Pattern[str], Replacements]] = []
        for pattern, table in _as_table(settings.get("regex", {}), "regex").items():
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid regular expression '{pattern}' in replace settings: {e}"
                ) from e
            self.regex.append((compiled, _as_replacements(table, f"regex.{pattern}")))

    def get_subscribed_events(self) -> dict[type, Listener]:
        return {BeforeAddPathEvent: self.on_before_add_path}

    def replacements_for(self, path: str) -> Replacements:
        found: Replacements = dict(self.all)
        name = path.rsplit("/", 1)[-1]
        for pattern, replacements in self.glob:
            if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(name, pattern):
                found.update(replacements)
        for pattern, replacements in self.regex:
            if pattern.search(path):
                found.update(replacements)
        return found

    def on_before_add_path(self, event: BeforeAddPathEvent) -> None:
        replacements = self.replacements_for(event.path)
        if not replacements:
            return
        content = event.content
        for search, replace in replacements.items():
            content = content.replace(search, replace)
        if content != event.content:
            logger.debug("Replaced placeholders", path=event.path)
            event.content = content


class ReplacePlugin:
    """Registers a ReplaceSubscriber configured from the `replace` settings."""

    def register(
        self,
        dispatcher: "EventDispatcher",
        configuration: "BuildConfiguration",
        container: "Container",
    ) -> None:
        dispatcher.add_subscriber(
            ReplaceSubscriber(configuration.get_settings("replace", {}))
        )
