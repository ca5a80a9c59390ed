"""
Resolution of build plugin references into registered handlers.

A reference is either the name of a built-in plugin (such as `replace`) or a
`package.module:attribute` import reference. The attribute may be a class or
factory producing the handler, or a handler instance itself.
"""

from collections.abc import Callable
import importlib
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pyvider.telemetry import logger

from ..exceptions import ConfigurationError
from .replace import ReplacePlugin

if TYPE_CHECKING:
    from ..config import BuildConfiguration
    from ..events import EventDispatcher
    from ..packaging.container import Container


@runtime_checkable
class Plugin(Protocol):
    def register(
        self,
        dispatcher: "EventDispatcher",
        configuration: "BuildConfiguration",
        container: "Container",
    ) -> None: ...


BUILTIN_PLUGINS: dict[str, Callable[[], Plugin]] = {
    "replace": ReplacePlugin,
}


def _import_reference(reference: str) -> Any:
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(
            f"The plugin reference '{reference}' is not a built-in plugin "
            f"or a 'module:attribute' reference."
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(
            f"The plugin module '{module_name}' could not be imported: {e}"
        ) from e
    try:
        return getattr(module, attribute)
    except AttributeError as e:
        raise ConfigurationError(
            f"The plugin module '{module_name}' has no attribute '{attribute}'."
        ) from e


def resolve_plugin(reference: Any) -> Plugin:
    """Turns a plugin reference into a handler implementing `register`."""
    if isinstance(reference, str):
        target = BUILTIN_PLUGINS.get(reference) or _import_reference(reference)
    else:
        target = reference

    handler = target
    if isinstance(target, type) or (callable(target) and not isinstance(target, Plugin)):
        try:
            handler = target()
        except Exception as e:
            raise ConfigurationError(
                f"The plugin '{reference}' could not be constructed: {e}"
            ) from e

    if not isinstance(handler, Plugin):
        raise ConfigurationError(
            f"The plugin '{reference}' does not provide a register() method."
        )
    logger.debug("Resolved plugin", reference=str(reference), plugin=type(handler).__name__)
    return handler
