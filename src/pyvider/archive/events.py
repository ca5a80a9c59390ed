"""
Build lifecycle events and the dispatcher that delivers them.

Each lifecycle point has its own event class. Fields created with
`_immutable()` reject assignment; the remaining fields may be changed by
subscribers and are read back by the builder after dispatch.
"""

from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from attrs import define, field, setters

from pyvider.telemetry import logger

from .exceptions import ExtensionFailure

if TYPE_CHECKING:
    from .config import SourcePath
    from .packaging.builder import ArchiveBuilder
    from .packaging.container import Container

E = TypeVar("E")
Listener = Callable[[Any], None]


def _immutable() -> Any:
    return field(on_setattr=setters.frozen)


@define
class BeforeSetPathsEvent:
    builder: "ArchiveBuilder" = _immutable()
    sources: "list[SourcePath]" = field(factory=list)


@define
class BeforeAddPathEvent:
    builder: "ArchiveBuilder" = _immutable()
    path: str = _immutable()
    source: Path | None = _immutable()
    content: bytes = b""
    skip: bool = False


@define
class BeforeCommitEvent:
    builder: "ArchiveBuilder" = _immutable()
    container: "Container" = _immutable()
    output: Path = _immutable()


@define
class AfterCommitEvent:
    builder: "ArchiveBuilder" = _immutable()
    output: Path = _immutable()
    digest: bytes = _immutable()


class EventSubscriber(Protocol):
    def get_subscribed_events(
        self,
    ) -> Mapping[type, Listener | Iterable[Listener]]: ...


class EventDispatcher:
    """Synchronous event bus; listeners run in registration order."""

    def __init__(self) -> None:
        self._listeners: dict[type, list[Listener]] = {}

    def subscribe(self, event_type: type, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def add_subscriber(self, subscriber: EventSubscriber) -> None:
        for event_type, listeners in subscriber.get_subscribed_events().items():
            if callable(listeners):
                listeners = [listeners]
            for listener in listeners:
                self.subscribe(event_type, listener)

    def listeners(self, event_type: type) -> list[Listener]:
        return list(self._listeners.get(event_type, []))

    def has_listeners(self, event_type: type) -> bool:
        return bool(self._listeners.get(event_type))

    def dispatch(self, event: E) -> E:
        for listener in self.listeners(type(event)):
            try:
                listener(event)
            except ExtensionFailure:
                raise
            except Exception as e:
                name = getattr(listener, "__qualname__", repr(listener))
                logger.error(
                    "Extension listener failed",
                    event_type=type(event).__name__,
                    listener=name,
                    error=str(e),
                )
                raise ExtensionFailure(
                    f"Listener {name} failed during {type(event).__name__}: {e}"
                ) from e
        return event
