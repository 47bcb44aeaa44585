"""s3volume CLI: operator console for inspecting and repairing volumes."""

from __future__ import annotations

from typing import Optional

import typer

from s3volume.cli import info, read, tombstones, write
from s3volume.cli._logging import configure_logging

app = typer.Typer(
    name="s3vol",
    help="s3volume CLI — operator console for inspecting and repairing volumes.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    storage_uri: str | None = None
    config: str | None = None
    json_output: bool = False
    verbose: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("s3volume")
        except Exception:
            v = "unknown"
        print(f"s3vol {v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        envvar="S3VOLUME_STORAGE_URI",
        help="Volume location (e.g. s3://bucket/root/prefix)",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="S3VOLUME_CONFIG",
        help="YAML or JSON file with volume properties",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all s3vol commands."""
    from s3volume.errors import InvalidConfigError
    from s3volume.volume import parse_storage_uri

    if storage_uri:
        try:
            parse_storage_uri(storage_uri)
        except InvalidConfigError as e:
            raise typer.BadParameter(str(e))

    state.storage_uri = storage_uri
    state.config = config
    state.json_output = json_output
    state.verbose = verbose
    configure_logging(verbose)
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.command(name="info")(info.info_cmd)
app.command(name="get")(read.get_cmd)
app.command(name="query")(read.query_cmd)
app.command(name="put")(write.put_cmd)
app.command(name="delete")(write.delete_cmd)
app.command(name="purge-tombstones")(tombstones.purge_tombstones_cmd)


def main() -> None:
    """Entry point for the s3vol CLI."""
    app()
