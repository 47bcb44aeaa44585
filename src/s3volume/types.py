"""Core value types: timestamps, values, stored entries and query replies."""

from __future__ import annotations

import time as _time
from dataclasses import dataclass
from datetime import datetime, timezone

from s3volume.keyexpr import KeyExpr

_FRAC = 1 << 32
_MAX_TIME = (1 << 64) - 1
_MAX_ID = (1 << 128) - 1


@dataclass(frozen=True, order=True)
class Timestamp:
    """Hybrid logical clock timestamp.

    ``time`` is a 64-bit NTP-style value relative to the UNIX epoch (upper
    32 bits are seconds, lower 32 bits the fraction of a second). ``id`` is the
    128-bit identifier of the clock that produced it and breaks ties, so the
    ordering is total over ``(time, id)``.
    """

    time: int
    id: int

    def __post_init__(self) -> None:
        if not 0 <= self.time <= _MAX_TIME:
            raise ValueError(f"Timestamp time out of range: {self.time}")
        if not 0 <= self.id <= _MAX_ID:
            raise ValueError(f"Timestamp id out of range: {self.id}")

    @classmethod
    def from_datetime(cls, dt: datetime, id: int) -> Timestamp:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        seconds = dt.timestamp()
        whole = int(seconds)
        frac = int((seconds - whole) * _FRAC)
        return cls(time=(whole << 32) | frac, id=id)

    @classmethod
    def now(cls, id: int) -> Timestamp:
        seconds = _time.time()
        whole = int(seconds)
        return cls(time=(whole << 32) | int((seconds - whole) * _FRAC), id=id)

    @classmethod
    def parse(cls, text: str) -> Timestamp:
        """Parse the ``<time>/<id hex>`` form produced by ``str()``."""
        time_part, sep, id_part = text.strip().partition("/")
        if not sep or not time_part or not id_part:
            raise ValueError(f"Invalid timestamp '{text}': expected '<time>/<id>'")
        try:
            return cls(time=int(time_part), id=int(id_part, 16))
        except ValueError as e:
            raise ValueError(f"Invalid timestamp '{text}': {e}") from e

    def to_datetime(self) -> datetime:
        seconds = (self.time >> 32) + (self.time & (_FRAC - 1)) / _FRAC
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    def __str__(self) -> str:
        return f"{self.time}/{self.id:x}"


@dataclass(frozen=True)
class Value:
    """An opaque payload with its encoding tag (empty when unspecified)."""

    payload: bytes
    encoding: str = ""

    @classmethod
    def text(cls, text: str, encoding: str = "text/plain") -> Value:
        return cls(payload=text.encode("utf-8"), encoding=encoding)


@dataclass(frozen=True)
class StoredEntry:
    """Decoded object body: a live value or a tombstone, with its timestamp."""

    value: Value | None
    timestamp: Timestamp

    @property
    def is_tombstone(self) -> bool:
        return self.value is None


@dataclass(frozen=True)
class Reply:
    """One query result."""

    key: KeyExpr
    value: Value
    timestamp: Timestamp
