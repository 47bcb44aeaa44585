"""Object store contract and the in-memory implementation."""

from __future__ import annotations

import asyncio
import bisect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class StoredObject:
    """An object body together with its user metadata."""

    body: bytes
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ListingPage:
    """Keys returned by one list call and the token for the next page, if any."""

    keys: list[str]
    next_token: str | None = None


class ObjectStore(ABC):
    """Async interface over the four primitives the engine relies on."""

    @abstractmethod
    async def put(self, key: str, body: bytes, *, metadata: dict[str, str] | None = None) -> None:
        """Create or replace the object at ``key``."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str) -> StoredObject | None:
        """Return the object at ``key``, or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the object at ``key``; removing a missing object is not an error."""
        raise NotImplementedError

    @abstractmethod
    async def list_page(
        self, prefix: str, token: str | None = None, *, limit: int | None = None
    ) -> ListingPage:
        """Return one page of keys starting with ``prefix``."""
        raise NotImplementedError

    async def probe(self, prefix: str = "") -> None:
        """Cheap reachability check; raises when the bucket is not accessible."""
        await self.list_page(prefix, None, limit=1)

    async def close(self) -> None:
        return None

    def describe(self) -> dict[str, str]:
        return {"store": type(self).__name__}


class InMemoryObjectStore(ObjectStore):
    """Dictionary-backed store used for tests and local runs.

    Keys are listed in lexicographic order like S3, ``page_size`` keys at a time.
    """

    def __init__(self, *, page_size: int = 1000) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self._data: dict[str, StoredObject] = {}
        self._sorted_keys: list[str] = []
        self._lock = asyncio.Lock()
        self.list_calls = 0
        self.closed = False

    async def put(self, key: str, body: bytes, *, metadata: dict[str, str] | None = None) -> None:
        async with self._lock:
            if key not in self._data:
                bisect.insort(self._sorted_keys, key)
            self._data[key] = StoredObject(body=bytes(body), metadata=dict(metadata or {}))

    async def get(self, key: str) -> StoredObject | None:
        async with self._lock:
            return self._data.get(key)

    async def delete(self, key: str) -> None:
        async with self._lock:
            if self._data.pop(key, None) is not None:
                idx = bisect.bisect_left(self._sorted_keys, key)
                del self._sorted_keys[idx]

    async def list_page(
        self, prefix: str, token: str | None = None, *, limit: int | None = None
    ) -> ListingPage:
        async with self._lock:
            self.list_calls += 1
            size = min(limit, self.page_size) if limit else self.page_size
            start = (
                bisect.bisect_right(self._sorted_keys, token)
                if token is not None
                else bisect.bisect_left(self._sorted_keys, prefix)
            )
            keys: list[str] = []
            idx = start
            while idx < len(self._sorted_keys) and len(keys) < size:
                key = self._sorted_keys[idx]
                if not key.startswith(prefix):
                    break
                keys.append(key)
                idx += 1
            more = (
                idx < len(self._sorted_keys)
                and self._sorted_keys[idx].startswith(prefix)
            )
            return ListingPage(keys=keys, next_token=keys[-1] if more and keys else None)

    async def close(self) -> None:
        self.closed = True

    def keys(self) -> list[str]:
        return list(self._sorted_keys)

    def raw(self, key: str) -> StoredObject | None:
        return self._data.get(key)


__all__ = ["InMemoryObjectStore", "ListingPage", "ObjectStore", "StoredObject"]
