"""Structured error types for s3volume."""

from __future__ import annotations

from typing import Any


class BackendError(Exception):
    """Base error for all s3volume errors."""


class InvalidKeyError(BackendError):
    """Raised when a concrete-key operation receives a wildcard or malformed key."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid key expression '{key}': {reason}")


class CorruptEntryError(BackendError):
    """Raised when a stored object body cannot be decoded."""

    def __init__(self, detail: str, *, object_key: str | None = None) -> None:
        self.detail = detail
        self.object_key = object_key
        where = f" at '{object_key}'" if object_key else ""
        super().__init__(f"Corrupt entry{where}: {detail}")


class UpstreamError(BackendError):
    """Raised when the object store itself fails."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Object store error during {operation}: {detail}")


class UnreachableError(BackendError):
    """Raised at open time when the bucket cannot be probed."""

    def __init__(self, bucket: str, detail: str) -> None:
        self.bucket = bucket
        self.detail = detail
        super().__init__(f"Bucket '{bucket}' is unreachable: {detail}")


class ListingTruncatedError(BackendError):
    """Raised when a listing hits the pagination cap with pages remaining.

    ``partial`` holds the replies gathered before the cap when the error comes
    out of ``QueryStream.collect``.
    """

    def __init__(self, prefix: str, pages: int) -> None:
        self.prefix = prefix
        self.pages = pages
        self.partial: list[Any] = []
        super().__init__(
            f"Listing under '{prefix}' stopped after {pages} page(s); results may be incomplete"
        )


class InvalidValueError(BackendError):
    """Raised when a value cannot be stored, such as an oversized encoding tag."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid value for '{key}': {reason}")


class InvalidConfigError(BackendError):
    """Raised when volume properties fail validation."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid volume configuration: {detail}")


class VolumeClosedError(BackendError):
    """Raised when an operation is attempted on a closed volume."""

    def __init__(self) -> None:
        super().__init__("Volume is closed")
