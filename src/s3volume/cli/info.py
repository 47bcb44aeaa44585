"""s3vol info — show volume binding and, optionally, entry counts."""

from __future__ import annotations

from typing import Any

import typer

from s3volume.cli import _exitcodes as ec
from s3volume.cli._output import print_error, print_object
from s3volume.cli._storage import with_volume
from s3volume.errors import BackendError
from s3volume.query import QueryDiagnostics
from s3volume.volume import Volume


async def _collect_info(volume: Volume, stats: bool) -> dict[str, Any]:
    data = volume.storage_info()
    if stats:
        live = 0
        diagnostics = QueryDiagnostics(pattern="**")
        async for _key, _object_key, entry in volume.executor.iter_entries(
            None, diagnostics, include_tombstones=True
        ):
            if not entry.is_tombstone:
                live += 1
        data["live_entries"] = live
        data["tombstones"] = diagnostics.tombstones
        data["skipped_objects"] = diagnostics.skipped
    return data


def info_cmd(
    stats: bool = typer.Option(False, "--stats", help="Count live entries and tombstones"),
) -> None:
    """Show volume binding and storage metadata."""
    from s3volume.cli import state

    try:
        data = with_volume(lambda volume: _collect_info(volume, stats))
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.STORAGE_ERROR)

    if state.json_output:
        print_object(data, json_mode=True)
        return

    print(f"Bucket: {data['bucket']}")
    print(f"Root prefix: {data['root_prefix'] or '(none)'}")
    print(f"Strip prefix: {data['strip_prefix'] or '(none)'}")
    print(f"Deletion mode: {data['deletion_mode']}")
    if "endpoint" in data:
        print(f"Endpoint: {data['endpoint']}")
    if stats:
        print(f"\nLive entries: {data['live_entries']}")
        print(f"Tombstones: {data['tombstones']}")
        if data["skipped_objects"]:
            print(f"Unreadable objects: {data['skipped_objects']}")
