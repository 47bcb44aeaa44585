"""Volume lifecycle: the storage capability handed to the bus runtime."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Protocol, runtime_checkable
from urllib.parse import urlparse

import structlog
from pydantic import ValidationError

from s3volume.codec import KeyCodec
from s3volume.config import BackendConfig, VolumeProperties
from s3volume.envelope import decode_entry
from s3volume.errors import (
    CorruptEntryError,
    InvalidConfigError,
    UnreachableError,
    UpstreamError,
    VolumeClosedError,
)
from s3volume.keyexpr import KeyExpr
from s3volume.query import QueryDiagnostics, QueryExecutor, QueryStream
from s3volume.resolver import LastWriterWinsResolver, Outcome, Resolver, store_call
from s3volume.store import ObjectStore
from s3volume.types import Reply, Timestamp, Value

logger = structlog.get_logger(__name__)


@dataclass
class StorageTarget:
    uri: str
    bucket: str
    root_prefix: str


def parse_storage_uri(storage_uri: str) -> StorageTarget:
    """Resolve ``s3://bucket/root/prefix`` into its bucket and root prefix."""
    parsed = urlparse(storage_uri)
    if parsed.scheme != "s3":
        raise InvalidConfigError(
            f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'"
        )
    bucket = parsed.netloc
    if not bucket:
        raise InvalidConfigError(f"Invalid s3 URI: {storage_uri}")
    root = parsed.path.lstrip("/").rstrip("/")
    return StorageTarget(uri=storage_uri, bucket=bucket, root_prefix=root)


@runtime_checkable
class StorageProtocol(Protocol):
    """Storage capability contract used by the bus runtime and the CLI."""

    async def put(self, key: KeyExpr | str, value: Value, timestamp: Timestamp) -> Outcome: ...

    async def delete(self, key: KeyExpr | str, timestamp: Timestamp) -> Outcome: ...

    def query(
        self,
        pattern: KeyExpr | str,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> QueryStream: ...

    async def get(self, key: KeyExpr | str) -> Reply | None: ...

    def all_entries(self) -> AsyncIterator[tuple[KeyExpr, Timestamp]]: ...

    def storage_info(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class Volume:
    """One storage instance bound to a bucket and root prefix."""

    def __init__(
        self,
        properties: VolumeProperties,
        store: ObjectStore,
        *,
        config: BackendConfig | None = None,
        resolver: Resolver | None = None,
    ) -> None:
        self.properties = properties
        self._config = config or BackendConfig()
        self._store = store
        self.codec = KeyCodec(
            root_prefix=properties.root_prefix, strip_prefix=properties.strip_prefix
        )
        self.resolver = resolver or LastWriterWinsResolver(
            store,
            self.codec,
            deletion_mode=properties.deletion_mode,
            default_encoding=properties.default_encoding,
        )
        self.executor = QueryExecutor(
            store,
            self.codec,
            max_pages=self._config.max_listing_pages,
            page_size=self._config.listing_page_size,
            fetch_concurrency=self._config.fetch_concurrency,
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise VolumeClosedError()

    # --- Writes ---

    async def put(self, key: KeyExpr | str, value: Value, timestamp: Timestamp) -> Outcome:
        self._check_open()
        return await self.resolver.apply_write(key, value, timestamp)

    async def delete(self, key: KeyExpr | str, timestamp: Timestamp) -> Outcome:
        self._check_open()
        return await self.resolver.apply_delete(key, timestamp)

    # --- Reads ---

    def query(
        self,
        pattern: KeyExpr | str,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> QueryStream:
        self._check_open()
        return self.executor.query(pattern, cancel=cancel, timeout=timeout)

    async def get(self, key: KeyExpr | str) -> Reply | None:
        """Return the live entry for a concrete key, or None."""
        self._check_open()
        object_key = self.codec.encode(key)
        obj = await store_call("get", object_key, self._store.get(object_key))
        if obj is None:
            return None
        try:
            entry = decode_entry(obj.body, object_key=object_key)
        except CorruptEntryError as e:
            logger.warning("entry.corrupt", object_key=object_key, error=e.detail)
            return None
        if entry.value is None:
            return None
        decoded = self.codec.decode(object_key)
        assert decoded is not None
        return Reply(key=decoded, value=entry.value, timestamp=entry.timestamp)

    async def all_entries(self) -> AsyncIterator[tuple[KeyExpr, Timestamp]]:
        """Yield ``(key, timestamp)`` for every live entry of the volume."""
        self._check_open()
        diagnostics = QueryDiagnostics(pattern="**")
        async for key, _object_key, entry in self.executor.iter_entries(None, diagnostics):
            yield key, entry.timestamp

    # --- Maintenance ---

    async def purge_tombstones(
        self, *, older_than: Timestamp | None = None, apply: bool = False
    ) -> dict[str, Any]:
        """Plan (and with ``apply=True`` perform) removal of tombstone objects.

        A removed tombstone no longer protects its key against a late write
        carrying an older timestamp.
        """
        self._check_open()
        diagnostics = QueryDiagnostics(pattern="**")
        plan: list[dict[str, str]] = []
        async for key, object_key, entry in self.executor.iter_entries(
            None, diagnostics, include_tombstones=True
        ):
            if not entry.is_tombstone:
                continue
            if older_than is not None and not entry.timestamp < older_than:
                continue
            plan.append(
                {"key": key.text, "object_key": object_key, "timestamp": str(entry.timestamp)}
            )

        result: dict[str, Any] = {"planned": plan, "applied": False, "removed": 0}
        if not apply:
            return result

        removed = 0
        for item in plan:
            object_key = item["object_key"]
            obj = await store_call("get", object_key, self._store.get(object_key))
            if obj is None:
                continue
            try:
                current = decode_entry(obj.body, object_key=object_key)
            except CorruptEntryError:
                continue
            # Skip tombstones replaced since they were listed.
            if not current.is_tombstone or str(current.timestamp) != item["timestamp"]:
                continue
            await store_call("delete", object_key, self._store.delete(object_key))
            removed += 1

        logger.info("tombstones.purged", planned=len(plan), removed=removed)
        result["applied"] = True
        result["removed"] = removed
        return result

    # --- Base lifecycle ---

    def storage_info(self) -> dict[str, Any]:
        return {
            "backend": "s3",
            "bucket": self.properties.bucket,
            "root_prefix": self.properties.root_prefix,
            "strip_prefix": self.properties.strip_prefix,
            "deletion_mode": self.properties.deletion_mode,
            "on_closure": self.properties.on_closure,
            "closed": self._closed,
            **self._store.describe(),
        }

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self.properties.on_closure == "destroy_bucket":
                destroy = getattr(self._store, "destroy_bucket", None)
                if destroy is None:
                    logger.warning("volume.destroy_unsupported", bucket=self.properties.bucket)
                else:
                    await store_call("destroy_bucket", self.properties.bucket, destroy())
        finally:
            await self._store.close()
            logger.info("volume.closed", bucket=self.properties.bucket)

    async def __aenter__(self) -> Volume:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def _validate_properties(properties: VolumeProperties | Mapping[str, Any]) -> VolumeProperties:
    if isinstance(properties, VolumeProperties):
        return properties
    try:
        return VolumeProperties.model_validate(dict(properties))
    except ValidationError as e:
        raise InvalidConfigError(str(e)) from e


async def open_volume(
    properties: VolumeProperties | Mapping[str, Any],
    *,
    config: BackendConfig | None = None,
    store: ObjectStore | None = None,
) -> Volume:
    """Validate properties, connect to the store and probe the bucket."""
    props = _validate_properties(properties)
    cfg = config or BackendConfig()
    if store is None:
        from s3volume.storage_s3 import S3ObjectStore

        store = S3ObjectStore.from_properties(props, cfg)

    volume = Volume(props, store, config=cfg)
    try:
        if props.create_bucket:
            create = getattr(store, "create_bucket", None)
            if create is not None:
                await store_call("create_bucket", props.bucket, create(reuse=props.reuse_bucket))
        try:
            await store.probe(volume.codec.root_listing_prefix)
        except Exception as e:
            raise UnreachableError(props.bucket, str(e)) from e
    except (UnreachableError, UpstreamError):
        await store.close()
        raise

    logger.info(
        "volume.opened",
        bucket=props.bucket,
        root_prefix=props.root_prefix,
        strip_prefix=props.strip_prefix,
        deletion_mode=props.deletion_mode,
    )
    return volume


__all__ = [
    "StorageProtocol",
    "StorageTarget",
    "Volume",
    "open_volume",
    "parse_storage_uri",
]
