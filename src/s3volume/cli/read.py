"""s3vol get / query — read entries back from a volume."""

from __future__ import annotations

from typing import Any, Optional

import typer

from s3volume.cli import _exitcodes as ec
from s3volume.cli._output import print_error, print_object, print_table, reply_row
from s3volume.cli._storage import with_volume
from s3volume.errors import BackendError, InvalidKeyError, ListingTruncatedError
from s3volume.volume import Volume

_HEADERS = ["key", "timestamp", "encoding", "value"]


def get_cmd(key: str = typer.Argument(..., help="Concrete key expression")) -> None:
    """Print the live value stored for a key."""
    from s3volume.cli import state

    try:
        reply = with_volume(lambda volume: volume.get(key))
    except InvalidKeyError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.STORAGE_ERROR)

    if reply is None:
        print_error(f"No value stored for '{key}'")
        raise typer.Exit(ec.NOT_FOUND)
    print_object(reply_row(reply), json_mode=state.json_output)


def query_cmd(
    pattern: str = typer.Argument(..., help="Key expression, wildcards allowed"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Stop listing after this many seconds"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Max results"),
) -> None:
    """List entries whose keys match a pattern."""
    from s3volume.cli import state

    rows: list[dict[str, Any]] = []
    diagnostics: dict[str, Any] = {}

    async def _run(volume: Volume) -> None:
        stream = volume.query(pattern, timeout=timeout)
        try:
            async for reply in stream:
                rows.append(reply_row(reply))
                if limit is not None and len(rows) >= limit:
                    break
        finally:
            if stream.diagnostics is not None:
                diagnostics.update(stream.diagnostics.as_dict())

    truncated: ListingTruncatedError | None = None
    try:
        with_volume(_run)
    except ListingTruncatedError as e:
        truncated = e
    except InvalidKeyError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    except BackendError as e:
        print_error(str(e))
        raise typer.Exit(ec.STORAGE_ERROR)

    if state.json_output:
        print_object({"results": rows, "diagnostics": diagnostics}, json_mode=True)
    else:
        print_table(
            _HEADERS,
            [[r["key"], r["timestamp"], r["encoding"], r.get("value", "<binary>")] for r in rows],
        )
        if diagnostics.get("skipped"):
            print(f"\n{diagnostics['skipped']} unreadable object(s) skipped")
        if diagnostics.get("cancelled"):
            print("\nListing stopped by timeout; results may be partial")

    if truncated is not None:
        print_error(str(truncated))
        raise typer.Exit(ec.INCOMPLETE_RESULT)
