"""The `pyvar` command-line interface."""

import importlib.metadata
from pathlib import Path
from typing import NoReturn

import click

from .config import BuildConfiguration, SourcePath, load_configuration
from .crypto import verify_file
from .exceptions import (
    ArchiveError,
    ConfigurationError,
    CorruptFormat,
    DecompressionFailure,
    ExtensionFailure,
    IntegrityMismatch,
    PathCollision,
)
from .packaging.builder import ArchiveBuilder
from .packaging.container import Container
from .packaging.extractor import extract

try:
    __version__ = importlib.metadata.version("pyvider-archive")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"

# Each error kind gets its own exit status; 1 covers any other archive error.
EXIT_CODES: dict[type[ArchiveError], tuple[int, str]] = {
    CorruptFormat: (2, "The archive is unreadable"),
    IntegrityMismatch: (3, "The archive is damaged or has been tampered with"),
    DecompressionFailure: (4, "An entry could not be decompressed"),
    PathCollision: (5, "Conflicting paths"),
    ConfigurationError: (6, "Invalid configuration"),
    ExtensionFailure: (7, "An extension failed"),
}


def _fail(error: Exception, action: str) -> NoReturn:
    code, summary = 1, "Archive error"
    for kind, (kind_code, kind_summary) in EXIT_CODES.items():
        if isinstance(error, kind):
            code, summary = kind_code, kind_summary
            break
    click.secho(f"❌ {action} failed. {summary}:\n{error}", fg="red", err=True)
    raise click.exceptions.Exit(code)


def _parse_add(value: str) -> SourcePath:
    alias, sep, source = value.partition("=")
    if not sep:
        return SourcePath(Path(value).resolve())
    return SourcePath(Path(source).resolve(), alias)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(
    __version__,
    "-V",
    "--version",
    prog_name="pyvar",
    message="%(prog)s version %(version)s",
)
def cli() -> None:
    """Pyvider Archive (PVAR) Tool."""
    pass


@cli.command("create")
@click.option(
    "--manifest",
    "pyproject_toml_path",
    default="pyproject.toml",
    type=click.Path(exists=True, dir_okay=False, resolve_path=True),
    help="Path to the pyproject.toml manifest file.",
)
@click.option(
    "--out",
    type=click.Path(dir_okay=False, resolve_path=True),
    help="Override the output path from pyproject.toml.",
)
def create_command(pyproject_toml_path: str, out: str | None) -> None:
    """Creates a new archive from the manifest's build settings."""
    click.echo("🚀 Creating archive...")
    try:
        configuration = load_configuration(Path(pyproject_toml_path))
        output = (
            ArchiveBuilder.create(configuration)
            .register_plugins()
            .apply_configuration()
            .commit(Path(out) if out else None)
        )
    except (ArchiveError, OSError) as e:
        _fail(e, "Creating the archive")
    click.secho(f"✅ Archive built successfully: {output}", fg="green")


@cli.command("edit")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, resolve_path=True))
@click.option(
    "--manifest",
    type=click.Path(exists=True, dir_okay=False, resolve_path=True),
    help="Apply the build settings of this pyproject.toml to the archive.",
)
@click.option("--add", "additions", multiple=True, help="Source to add, as SOURCE or ALIAS=SOURCE.")
@click.option("--remove", "removals", multiple=True, help="Archive path to remove.")
@click.option("--compression", help="Compression mode for the archive.")
@click.option("--entry-point", help="Archive path of the entry point script.")
@click.option("--no-entry-point", is_flag=True, help="Remove the entry point designation.")
@click.option("--out", type=click.Path(dir_okay=False, resolve_path=True), help="Write to this path instead.")
def edit_command(
    archive: str,
    manifest: str | None,
    additions: tuple[str, ...],
    removals: tuple[str, ...],
    compression: str | None,
    entry_point: str | None,
    no_entry_point: bool,
    out: str | None,
) -> None:
    """Amends an existing archive."""
    if entry_point and no_entry_point:
        raise click.UsageError("--entry-point and --no-entry-point are mutually exclusive.")

    click.echo(f"✏️  Editing archive '{archive}'...")
    try:
        configuration = (
            load_configuration(Path(manifest))
            if manifest
            else BuildConfiguration.default(Path.cwd())
        )
        builder = ArchiveBuilder.open(archive, configuration).register_plugins()
        if manifest:
            builder.apply_configuration()
        for path in removals:
            builder.remove_path(path)
        if additions:
            builder.add_paths(_parse_add(a) for a in additions)
        if compression:
            builder.set_compression(compression)
        if entry_point:
            builder.set_entry_point(entry_point)
        elif no_entry_point:
            builder.set_entry_point(None)
        output = builder.commit(Path(out) if out else None)
    except (ArchiveError, OSError) as e:
        _fail(e, "Editing the archive")
    click.secho(f"✅ Archive updated successfully: {output}", fg="green")


@cli.command("extract")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, resolve_path=True))
@click.argument("destination", type=click.Path(file_okay=False, resolve_path=True))
@click.argument("paths", nargs=-1)
def extract_command(archive: str, destination: str, paths: tuple[str, ...]) -> None:
    """Extracts the archive, or only PATHS, into DESTINATION."""
    click.echo(f"📦 Extracting '{archive}'...")
    try:
        written = extract(Container.open(archive), destination, paths)
    except (ArchiveError, OSError) as e:
        _fail(e, "Extraction")
    click.secho(f"✅ Extracted {len(written)} entries to '{destination}'.", fg="green")


@cli.command("verify")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, resolve_path=True))
def verify_command(archive: str) -> None:
    """Verifies the integrity of an archive."""
    click.echo(f"🔍 Verifying archive '{archive}'...")
    try:
        verify_file(Path(archive))
        container = Container.open(archive)
        click.echo(container.get_info())
        for path in container.list_paths():
            if container.get_entry(path).is_file:
                container.get_content(path)
    except ArchiveError as e:
        _fail(e, "Verification")
    click.secho("✅ Archive integrity verified.", fg="green")


@cli.command("list")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, resolve_path=True))
def list_command(archive: str) -> None:
    """Lists the paths stored in an archive."""
    try:
        container = Container.open(archive)
    except ArchiveError as e:
        _fail(e, "Listing")
    for entry in container.entries():
        suffix = "/" if entry.is_directory else ""
        click.echo(f"{entry.original_size:>10}  {entry.path}{suffix}")


main = cli
