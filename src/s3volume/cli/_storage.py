"""CLI helpers for building volume properties and opening volumes."""

from __future__ import annotations

import asyncio
import os
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import typer
import yaml

from s3volume.config import BackendConfig, VolumeProperties
from s3volume.errors import InvalidConfigError
from s3volume.store import ObjectStore
from s3volume.volume import Volume, open_volume, parse_storage_uri

T = TypeVar("T")


def _read_config_file(path: str) -> dict[str, Any]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidConfigError(f"cannot read config file '{path}': {e}") from e
    # YAML is a superset of JSON, so both formats load here.
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise InvalidConfigError(f"config file '{path}' must hold a mapping")
    volume = data.get("volume", data)
    if not isinstance(volume, dict):
        raise InvalidConfigError(f"'volume' section of '{path}' must be a mapping")
    return dict(volume)


def load_properties() -> VolumeProperties:
    """Build volume properties from --config, --storage-uri and the environment."""
    from s3volume.cli import state

    data: dict[str, Any] = {}
    if state.config:
        data.update(_read_config_file(state.config))
    if state.storage_uri:
        target = parse_storage_uri(state.storage_uri)
        data["bucket"] = target.bucket
        data["root_prefix"] = target.root_prefix
    if "bucket" not in data:
        raise InvalidConfigError("no bucket given; use --storage-uri or --config")

    region = os.getenv("S3VOLUME_S3_REGION")
    if region and "region" not in data:
        data["region"] = region
    endpoint = os.getenv("S3VOLUME_S3_ENDPOINT_URL") or os.getenv("S3VOLUME_S3_ENDPOINT")
    if endpoint and "endpoint" not in data and "url" not in data:
        data["endpoint"] = endpoint

    try:
        props = VolumeProperties.model_validate(data)
    except ValueError as e:
        raise InvalidConfigError(str(e)) from e
    # The CLI borrows a volume; it must never tear the bucket down on exit.
    return props.model_copy(update={"on_closure": "do_nothing"})


def make_store(properties: VolumeProperties, config: BackendConfig) -> ObjectStore:
    from s3volume.storage_s3 import S3ObjectStore

    return S3ObjectStore.from_properties(properties, config)


async def open_cli_volume() -> Volume:
    props = load_properties()
    config = BackendConfig.from_env()
    return await open_volume(props, config=config, store=make_store(props, config))


def with_volume(fn: Callable[[Volume], Awaitable[T]]) -> T:
    """Open a volume, run ``fn`` against it and close it, all on a fresh event loop."""

    async def _run() -> T:
        volume = await open_cli_volume()
        try:
            return await fn(volume)
        finally:
            await volume.close()

    return asyncio.run(_run())


def node_id(value: str | None) -> int:
    """Clock id for timestamps minted by the CLI."""
    raw = value or os.getenv("S3VOLUME_NODE_ID")
    if not raw:
        return uuid.uuid4().int
    try:
        node = int(raw, 16)
    except ValueError:
        raise typer.BadParameter(f"node id '{raw}' is not a hex number")
    if not 0 <= node < 1 << 128:
        raise typer.BadParameter(f"node id '{raw}' does not fit in 128 bits")
    return node
