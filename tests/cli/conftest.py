"""Shared fixtures for CLI tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable

import pytest
from typer.testing import CliRunner

from s3volume import InMemoryObjectStore, Timestamp, Value
from s3volume.cli import app
from s3volume.codec import KeyCodec
from s3volume.resolver import LastWriterWinsResolver

if TYPE_CHECKING:
    from click.testing import Result

STORAGE_URI = "s3://cli-bucket/vol"


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_store(monkeypatch) -> InMemoryObjectStore:
    """One in-memory store shared by every CLI invocation of a test."""
    store = InMemoryObjectStore()
    monkeypatch.setattr(
        "s3volume.cli._storage.make_store", lambda properties, config: store
    )
    for name in ("S3VOLUME_S3_REGION", "S3VOLUME_S3_ENDPOINT_URL", "S3VOLUME_S3_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("S3VOLUME_NODE_ID", "a1")
    return store


@pytest.fixture
def seed(cli_store) -> Callable[..., None]:
    """Write entries straight into the shared store, laid out like volume ``s3://cli-bucket/vol``."""

    def _seed(entries: dict[str, str | None], *, time: int = 1) -> None:
        resolver = LastWriterWinsResolver(cli_store, KeyCodec(root_prefix="vol"))

        async def _run() -> None:
            for key, text in entries.items():
                ts = Timestamp(time=time << 32, id=1)
                if text is None:
                    await resolver.apply_delete(key, ts)
                else:
                    await resolver.apply_write(key, Value.text(text), ts)

        asyncio.run(_run())

    return _seed


@pytest.fixture
def invoke(runner: CliRunner, cli_store) -> Callable[..., Result]:
    """Invoke the CLI against the shared store."""

    def _invoke(args: list[str], storage_uri: str | None = STORAGE_URI) -> Result:
        if storage_uri:
            args = ["--storage-uri", storage_uri] + args
        return runner.invoke(app, args, catch_exceptions=False)

    return _invoke
