"""Rendering of the default bootstrap stub and of the primary script."""

from pathlib import Path
import re

import jinja2

from .config import BuildConfiguration

_TEMPLATE_DIR = Path(__file__).parent / "templates"
_ENTRY_POINT_LINE = re.compile(rb"\A# Entry point: (?P<main>[^\r\n]+)")

DEFAULT_SHEBANG = "#!/bin/sh"


def _get_template_env() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(_TEMPLATE_DIR),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
    )


def render_default_stub(shebang: str | None = None) -> bytes:
    """Renders the shell preamble that re-executes the archive with Python."""
    template = _get_template_env().get_template("stub.sh.j2")
    return template.render(shebang=shebang or DEFAULT_SHEBANG).encode("utf-8")


def render_primary_script(main: str) -> bytes:
    """Renders the script stored at the reserved primary path."""
    template = _get_template_env().get_template("primary.py.j2")
    return template.render(main=main, parts=main.split("/")).encode("utf-8")


def read_entry_point(primary: bytes | None) -> str | None:
    """Recovers the entry point path recorded in a primary script."""
    if not primary:
        return None
    match = _ENTRY_POINT_LINE.match(primary)
    return match.group("main").decode("utf-8") if match else None


def build_stub(configuration: BuildConfiguration) -> bytes | None:
    """
    Resolves the stub for a build: the configured bootstrap script (with the
    shebang line prepended when it lacks one), the default stub when only a
    shebang is configured, or no stub at all.
    """
    bootstrap = configuration.read_bootstrap()
    shebang = configuration.shebang
    if bootstrap is not None:
        if shebang and not bootstrap.startswith(b"#!"):
            bootstrap = shebang.encode("utf-8") + b"\n" + bootstrap
        return bootstrap
    if shebang:
        return render_default_stub(shebang)
    return None
