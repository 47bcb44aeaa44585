"""Last-writer-wins resolution of writes and deletes against the object store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, Literal, TypeVar

import structlog

from s3volume.codec import KeyCodec
from s3volume.envelope import MAX_ENCODING_BYTES, decode_entry, encode_entry, object_metadata
from s3volume.errors import CorruptEntryError, InvalidValueError, UpstreamError
from s3volume.keyexpr import KeyExpr
from s3volume.store import ObjectStore
from s3volume.types import Timestamp, Value

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DeletionMode = Literal["tombstone", "native"]


class Outcome(str, Enum):
    APPLIED = "applied"
    DISCARDED = "discarded"


async def store_call(operation: str, object_key: str, awaitable: Awaitable[T]) -> T:
    """Await a store request, reporting any failure as UpstreamError."""
    try:
        return await awaitable
    except Exception as e:
        raise UpstreamError(operation, f"'{object_key}': {e}") from e


class Resolver(ABC):
    """Decides whether an incoming write or delete reaches the store.

    The store offers no compare-and-swap, so two callers racing on one key can
    both pass the timestamp check and the later ``put`` lands last. A store with
    conditional writes can close that window with its own implementation.
    """

    @abstractmethod
    async def apply_write(self, key: KeyExpr | str, value: Value, timestamp: Timestamp) -> Outcome:
        raise NotImplementedError

    @abstractmethod
    async def apply_delete(self, key: KeyExpr | str, timestamp: Timestamp) -> Outcome:
        raise NotImplementedError


class LastWriterWinsResolver(Resolver):
    """Apply an operation only when its timestamp beats the stored one.

    With ``deletion_mode="tombstone"`` a delete writes a tombstone entry so its
    timestamp survives for later comparisons. With ``"native"`` the object is
    removed and the deletion timestamp is kept in an in-process index for the
    lifetime of this resolver only.
    """

    def __init__(
        self,
        store: ObjectStore,
        codec: KeyCodec,
        *,
        deletion_mode: DeletionMode = "tombstone",
        default_encoding: str = "",
    ) -> None:
        if deletion_mode not in ("tombstone", "native"):
            raise ValueError(f"Unknown deletion mode '{deletion_mode}'")
        self._store = store
        self._codec = codec
        self.deletion_mode = deletion_mode
        self._default_encoding = default_encoding
        self._deletions: dict[str, Timestamp] = {}

    async def apply_write(self, key: KeyExpr | str, value: Value, timestamp: Timestamp) -> Outcome:
        if not value.encoding and self._default_encoding:
            value = Value(payload=value.payload, encoding=self._default_encoding)
        if len(value.encoding.encode("utf-8")) > MAX_ENCODING_BYTES:
            raise InvalidValueError(
                str(key), f"encoding tag exceeds {MAX_ENCODING_BYTES} bytes"
            )
        return await self._apply(key, value, timestamp)

    async def apply_delete(self, key: KeyExpr | str, timestamp: Timestamp) -> Outcome:
        return await self._apply(key, None, timestamp)

    async def current_timestamp(self, object_key: str) -> Timestamp | None:
        """Latest timestamp known for an object: stored entry or deletion mark."""
        obj = await store_call("get", object_key, self._store.get(object_key))
        stored: Timestamp | None = None
        if obj is not None:
            try:
                stored = decode_entry(obj.body, object_key=object_key).timestamp
            except CorruptEntryError as e:
                # An unreadable entry can be repaired by any newer write.
                logger.warning("entry.corrupt", object_key=object_key, error=e.detail)
        mark = self._deletions.get(object_key)
        if mark is None:
            return stored
        if stored is None:
            return mark
        return max(stored, mark)

    async def _apply(self, key: KeyExpr | str, value: Value | None, timestamp: Timestamp) -> Outcome:
        object_key = self._codec.encode(key)
        op = "delete" if value is None else "write"
        current = await self.current_timestamp(object_key)
        if current is not None and not timestamp > current:
            logger.debug(
                f"{op}.discarded",
                key=str(key),
                timestamp=str(timestamp),
                current=str(current),
            )
            return Outcome.DISCARDED

        if value is None and self.deletion_mode == "native":
            await store_call("delete", object_key, self._store.delete(object_key))
            self._deletions[object_key] = timestamp
        else:
            body = encode_entry(value, timestamp)
            await store_call(
                "put",
                object_key,
                self._store.put(object_key, body, metadata=object_metadata(value, timestamp)),
            )
            mark = self._deletions.get(object_key)
            if mark is not None and mark < timestamp:
                del self._deletions[object_key]

        logger.debug(f"{op}.applied", key=str(key), object_key=object_key, timestamp=str(timestamp))
        return Outcome.APPLIED

    def forget_deletions(self) -> int:
        """Drop the in-process deletion index; returns how many marks were held."""
        count = len(self._deletions)
        self._deletions.clear()
        return count


__all__ = ["DeletionMode", "LastWriterWinsResolver", "Outcome", "Resolver", "store_call"]
