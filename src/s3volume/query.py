"""Wildcard queries: list object keys, filter by pattern, fetch and decode entries."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator

import structlog

from s3volume.codec import KeyCodec
from s3volume.envelope import decode_entry
from s3volume.errors import CorruptEntryError, InvalidKeyError, ListingTruncatedError
from s3volume.keyexpr import KeyExpr, ensure_keyexpr
from s3volume.resolver import store_call
from s3volume.store import ObjectStore
from s3volume.types import Reply, StoredEntry

logger = structlog.get_logger(__name__)


def parse_pattern(pattern: KeyExpr | str) -> KeyExpr:
    try:
        return ensure_keyexpr(pattern)
    except ValueError as e:
        raise InvalidKeyError(str(pattern), str(e)) from e


@dataclass
class QueryDiagnostics:
    """Counters gathered while a query runs."""

    pattern: str
    prefix: str | None = None
    pages: int = 0
    listed: int = 0
    matched: int = 0
    returned: int = 0
    tombstones: int = 0
    vanished: int = 0
    corrupt: int = 0
    failed: int = 0
    truncated: bool = False
    cancelled: bool = False

    @property
    def skipped(self) -> int:
        return self.vanished + self.corrupt + self.failed

    def as_dict(self) -> dict[str, Any]:
        return {**asdict(self), "skipped": self.skipped}


class QueryExecutor:
    """Runs listings and entry fetches for one volume."""

    def __init__(
        self,
        store: ObjectStore,
        codec: KeyCodec,
        *,
        max_pages: int = 10000,
        page_size: int = 1000,
        fetch_concurrency: int = 16,
    ) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be positive")
        self._store = store
        self._codec = codec
        self.max_pages = max_pages
        self.page_size = page_size
        self.fetch_concurrency = max(1, fetch_concurrency)

    def query(
        self,
        pattern: KeyExpr | str,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> QueryStream:
        return QueryStream(self, parse_pattern(pattern), cancel=cancel, timeout=timeout)

    async def iter_entries(
        self,
        pattern: KeyExpr | None,
        diagnostics: QueryDiagnostics,
        *,
        include_tombstones: bool = False,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[tuple[KeyExpr, str, StoredEntry]]:
        """Yield ``(key, object_key, entry)`` in listing order.

        ``pattern=None`` selects every key of the volume.
        """
        if pattern is None:
            prefix: str | None = self._codec.root_listing_prefix
        else:
            prefix = self._codec.listing_prefix(pattern)
        diagnostics.prefix = prefix
        if prefix is None:
            return

        deadline = None
        if timeout is not None:
            deadline = asyncio.get_running_loop().time() + timeout
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async for keys in self._pages(prefix, diagnostics, cancel=cancel, deadline=deadline):
            candidates: list[tuple[KeyExpr, str]] = []
            for object_key in keys:
                key = self._codec.decode(object_key)
                if key is None:
                    continue
                if pattern is not None and not pattern.matches(key):
                    continue
                candidates.append((key, object_key))
            diagnostics.matched += len(candidates)

            entries = await asyncio.gather(
                *(self._load(object_key, semaphore, diagnostics) for _, object_key in candidates)
            )
            for (key, object_key), entry in zip(candidates, entries):
                if entry is None:
                    continue
                if entry.is_tombstone:
                    diagnostics.tombstones += 1
                    if not include_tombstones:
                        continue
                yield key, object_key, entry

    async def _pages(
        self,
        prefix: str,
        diagnostics: QueryDiagnostics,
        *,
        cancel: asyncio.Event | None,
        deadline: float | None,
    ) -> AsyncIterator[list[str]]:
        token: str | None = None
        loop = asyncio.get_running_loop()
        while True:
            if diagnostics.pages >= self.max_pages:
                diagnostics.truncated = True
                logger.warning("query.truncated", prefix=prefix, pages=diagnostics.pages)
                raise ListingTruncatedError(prefix, diagnostics.pages)
            if (cancel is not None and cancel.is_set()) or (
                deadline is not None and loop.time() >= deadline
            ):
                diagnostics.cancelled = True
                logger.info("query.cancelled", prefix=prefix, pages=diagnostics.pages)
                return
            page = await store_call(
                "list", prefix, self._store.list_page(prefix, token, limit=self.page_size)
            )
            diagnostics.pages += 1
            diagnostics.listed += len(page.keys)
            yield page.keys
            if page.next_token is None:
                return
            token = page.next_token

    async def _load(
        self, object_key: str, semaphore: asyncio.Semaphore, diagnostics: QueryDiagnostics
    ) -> StoredEntry | None:
        async with semaphore:
            try:
                obj = await self._store.get(object_key)
            except Exception as e:
                diagnostics.failed += 1
                logger.warning(
                    "query.entry_skipped", object_key=object_key, reason="fetch_failed", error=str(e)
                )
                return None
        if obj is None:
            # Deleted between listing and fetch.
            diagnostics.vanished += 1
            return None
        try:
            return decode_entry(obj.body, object_key=object_key)
        except CorruptEntryError as e:
            diagnostics.corrupt += 1
            logger.warning(
                "query.entry_skipped", object_key=object_key, reason="corrupt", error=e.detail
            )
            return None


class QueryStream:
    """Lazy, restartable sequence of replies for one pattern.

    Each ``async for`` lists the store again. ``diagnostics`` describes the most
    recent run. When the listing cap is hit the stream raises
    ListingTruncatedError after the replies fetched so far.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        pattern: KeyExpr,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> None:
        self.pattern = pattern
        self._executor = executor
        self._cancel = cancel
        self._timeout = timeout
        self.diagnostics: QueryDiagnostics | None = None

    def __aiter__(self) -> AsyncIterator[Reply]:
        return self._run()

    async def _run(self) -> AsyncIterator[Reply]:
        diagnostics = QueryDiagnostics(pattern=self.pattern.text)
        self.diagnostics = diagnostics
        async for key, _object_key, entry in self._executor.iter_entries(
            self.pattern, diagnostics, cancel=self._cancel, timeout=self._timeout
        ):
            assert entry.value is not None
            diagnostics.returned += 1
            yield Reply(key=key, value=entry.value, timestamp=entry.timestamp)
        if diagnostics.skipped:
            logger.info("query.partial", **diagnostics.as_dict())

    async def collect(self) -> list[Reply]:
        """Gather every reply into a list.

        On ListingTruncatedError the replies gathered so far are attached to the
        error as ``partial``.
        """
        replies: list[Reply] = []
        try:
            async for reply in self:
                replies.append(reply)
        except ListingTruncatedError as e:
            e.partial = replies
            raise
        return replies


__all__ = ["QueryDiagnostics", "QueryExecutor", "QueryStream", "parse_pattern"]
