"""s3vol put / delete — apply timestamped operations to a volume."""

from __future__ import annotations

from typing import Optional

import typer

from s3volume.cli import _exitcodes as ec
from s3volume.cli._output import print_error, print_object
from s3volume.cli._storage import node_id, with_volume
from s3volume.errors import BackendError, InvalidKeyError, InvalidValueError
from s3volume.resolver import Outcome
from s3volume.types import Timestamp, Value


def _timestamp(explicit: str | None, node: str | None) -> Timestamp:
    if explicit:
        try:
            return Timestamp.parse(explicit)
        except ValueError as e:
            raise typer.BadParameter(str(e))
    return Timestamp.now(node_id(node))


def _report(key: str, outcome: Outcome, timestamp: Timestamp) -> None:
    from s3volume.cli import state

    print_object(
        {"key": key, "outcome": outcome.value, "timestamp": str(timestamp)},
        json_mode=state.json_output,
    )


def put_cmd(
    key: str = typer.Argument(..., help="Concrete key expression"),
    value: str = typer.Argument(..., help="Value, stored as UTF-8"),
    encoding: str = typer.Option("text/plain", "--encoding", help="Encoding tag"),
    timestamp: Optional[str] = typer.Option(
        None, "--timestamp", help="Explicit '<time>/<id hex>' timestamp (default: now)"
    ),
    node: Optional[str] = typer.Option(None, "--node-id", help="Clock id (hex) for new timestamps"),
) -> None:
    """Write a value if it is newer than what the volume holds."""
    ts = _timestamp(timestamp, node)
    try:
        outcome = with_volume(lambda volume: volume.put(key, Value.text(value, encoding), ts))
    except (InvalidKeyError, InvalidValueError) as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.STORAGE_ERROR)
    _report(key, outcome, ts)


def delete_cmd(
    key: str = typer.Argument(..., help="Concrete key expression"),
    timestamp: Optional[str] = typer.Option(
        None, "--timestamp", help="Explicit '<time>/<id hex>' timestamp (default: now)"
    ),
    node: Optional[str] = typer.Option(None, "--node-id", help="Clock id (hex) for new timestamps"),
) -> None:
    """Delete a key if the deletion is newer than what the volume holds."""
    ts = _timestamp(timestamp, node)
    try:
        outcome = with_volume(lambda volume: volume.delete(key, ts))
    except InvalidKeyError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.STORAGE_ERROR)
    _report(key, outcome, ts)
