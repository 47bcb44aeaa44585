"""s3vol purge-tombstones — reclaim deletion markers."""

from __future__ import annotations

from typing import Optional

import typer

from s3volume.cli import _exitcodes as ec
from s3volume.cli._output import print_error, print_object
from s3volume.cli._storage import with_volume
from s3volume.errors import BackendError
from s3volume.types import Timestamp


def purge_tombstones_cmd(
    older_than: Optional[str] = typer.Option(
        None, "--older-than", help="Only tombstones older than this '<time>/<id hex>' timestamp"
    ),
    apply: bool = typer.Option(False, "--apply", help="Delete the tombstones (default: dry-run)"),
) -> None:
    """Remove tombstone objects. Without --apply only the plan is printed."""
    from s3volume.cli import state

    cutoff = None
    if older_than:
        try:
            cutoff = Timestamp.parse(older_than)
        except ValueError as e:
            raise typer.BadParameter(str(e))

    try:
        data = with_volume(lambda volume: volume.purge_tombstones(older_than=cutoff, apply=apply))
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.STORAGE_ERROR)

    if state.json_output:
        print_object(data, json_mode=True)
        return
    for item in data["planned"]:
        print(f"{item['key']}  {item['timestamp']}")
    verb = "Removed" if data["applied"] else "Would remove"
    count = data["removed"] if data["applied"] else len(data["planned"])
    print(f"{verb} {count} tombstone(s)")
