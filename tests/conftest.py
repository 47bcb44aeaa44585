"""Shared test fixtures for s3volume tests."""

from __future__ import annotations

from typing import Callable

import pytest
import pytest_asyncio
import structlog

from s3volume import InMemoryObjectStore, Timestamp, VolumeProperties, open_volume
from s3volume.config import BackendConfig
from s3volume.store import StoredObject


class FlakyStore(InMemoryObjectStore):
    """In-memory store that can be told to fail specific requests."""

    def __init__(self, *, page_size: int = 1000) -> None:
        super().__init__(page_size=page_size)
        self.failing_gets: set[str] = set()
        self.fail_puts = False
        self.fail_lists = False
        self.fail_list_after_pages: int | None = None
        self.put_calls = 0
        self.delete_calls = 0

    async def get(self, key: str) -> StoredObject | None:
        if key in self.failing_gets:
            raise ConnectionError(f"simulated read failure for {key}")
        return await super().get(key)

    async def put(self, key: str, body: bytes, *, metadata: dict[str, str] | None = None) -> None:
        self.put_calls += 1
        if self.fail_puts:
            raise ConnectionError("simulated write failure")
        await super().put(key, body, metadata=metadata)

    async def delete(self, key: str) -> None:
        self.delete_calls += 1
        await super().delete(key)

    async def list_page(self, prefix: str, token: str | None = None, *, limit: int | None = None):
        if self.fail_lists:
            raise ConnectionError("simulated listing failure")
        if self.fail_list_after_pages is not None and self.list_calls >= self.fail_list_after_pages:
            raise ConnectionError("simulated listing failure")
        return await super().list_page(prefix, token, limit=limit)


@pytest.fixture
def ts() -> Callable[..., Timestamp]:
    """Build timestamps with a readable logical time: ``ts(3)``, ``ts(3, node=2)``."""

    def _make(n: int, node: int = 1) -> Timestamp:
        return Timestamp(time=n << 32, id=node)

    return _make


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def props() -> VolumeProperties:
    return VolumeProperties(bucket="test-bucket", root_prefix="vol")


@pytest_asyncio.fixture
async def volume(store: FlakyStore, props: VolumeProperties):
    vol = await open_volume(props, store=store)
    yield vol
    await vol.close()


@pytest.fixture
def small_pages() -> BackendConfig:
    return BackendConfig(listing_page_size=2, max_listing_pages=2)


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    # CLI runs bind log output to the runner's stderr, which is gone afterwards.
    structlog.reset_defaults()
