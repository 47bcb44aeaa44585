"""Object body layout: a versioned header carrying the timestamp, then the payload.

Layout (big-endian)::

    magic          4   b"S3VE"
    version        1
    flags          1   bit 0 = tombstone
    time           8
    clock id      16
    encoding len   2
    payload len    8
    encoding       n   UTF-8
    payload        m
"""

from __future__ import annotations

import struct
from urllib.parse import quote

from s3volume.errors import CorruptEntryError
from s3volume.types import StoredEntry, Timestamp, Value

MAGIC = b"S3VE"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = frozenset({FORMAT_VERSION})

FLAG_TOMBSTONE = 0x01

_HEADER = struct.Struct(">4sBBQ16sHQ")
HEADER_SIZE = _HEADER.size

MAX_ENCODING_BYTES = 0xFFFF


def encode_entry(value: Value | None, timestamp: Timestamp) -> bytes:
    """Serialize a value (or a tombstone when ``value`` is None) with its timestamp."""
    if value is None:
        flags = FLAG_TOMBSTONE
        encoding = b""
        payload = b""
    else:
        flags = 0
        encoding = value.encoding.encode("utf-8")
        payload = bytes(value.payload)
    if len(encoding) > MAX_ENCODING_BYTES:
        raise ValueError(f"Encoding tag too long ({len(encoding)} bytes)")
    header = _HEADER.pack(
        MAGIC,
        FORMAT_VERSION,
        flags,
        timestamp.time,
        timestamp.id.to_bytes(16, "big"),
        len(encoding),
        len(payload),
    )
    return header + encoding + payload


def encode_tombstone(timestamp: Timestamp) -> bytes:
    return encode_entry(None, timestamp)


def decode_entry(body: bytes, *, object_key: str | None = None) -> StoredEntry:
    """Parse an object body, raising CorruptEntryError on any inconsistency."""
    if len(body) < HEADER_SIZE:
        raise CorruptEntryError(
            f"body is {len(body)} bytes, shorter than the {HEADER_SIZE}-byte header",
            object_key=object_key,
        )
    magic, version, flags, time, raw_id, enc_len, payload_len = _HEADER.unpack_from(body)
    if magic != MAGIC:
        raise CorruptEntryError(f"unrecognized magic {magic!r}", object_key=object_key)
    if version not in SUPPORTED_VERSIONS:
        raise CorruptEntryError(f"unsupported format version {version}", object_key=object_key)

    enc_end = HEADER_SIZE + enc_len
    if enc_end > len(body):
        raise CorruptEntryError("encoding tag overruns body", object_key=object_key)
    declared = enc_end + payload_len
    if declared != len(body):
        raise CorruptEntryError(
            f"declared payload length {payload_len} disagrees with body length {len(body)}",
            object_key=object_key,
        )
    try:
        encoding = body[HEADER_SIZE:enc_end].decode("utf-8")
    except UnicodeDecodeError as e:
        raise CorruptEntryError(f"encoding tag is not UTF-8: {e}", object_key=object_key) from e

    timestamp = Timestamp(time=time, id=int.from_bytes(raw_id, "big"))
    if flags & FLAG_TOMBSTONE:
        if payload_len or enc_len:
            raise CorruptEntryError("tombstone carries a payload", object_key=object_key)
        return StoredEntry(value=None, timestamp=timestamp)
    return StoredEntry(value=Value(payload=body[enc_end:], encoding=encoding), timestamp=timestamp)


def object_metadata(entry_value: Value | None, timestamp: Timestamp) -> dict[str, str]:
    """User metadata written next to the body so operators can inspect objects."""
    meta = {"timestamp": str(timestamp), "format-version": str(FORMAT_VERSION)}
    if entry_value is None:
        meta["tombstone"] = "1"
    elif entry_value.encoding:
        # S3 user metadata must be ASCII.
        meta["encoding"] = quote(entry_value.encoding, safe="/;=+ ")
    return meta
