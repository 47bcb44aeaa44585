"""s3volume: last-writer-wins key/value volumes on S3-compatible object storage."""

__version__ = "0.1.0"

from s3volume.codec import KeyCodec
from s3volume.config import BackendConfig, Credentials, VolumeProperties
from s3volume.envelope import decode_entry, encode_entry
from s3volume.errors import (
    BackendError,
    CorruptEntryError,
    InvalidConfigError,
    InvalidKeyError,
    InvalidValueError,
    ListingTruncatedError,
    UnreachableError,
    UpstreamError,
    VolumeClosedError,
)
from s3volume.keyexpr import KeyExpr
from s3volume.query import QueryDiagnostics, QueryStream
from s3volume.resolver import LastWriterWinsResolver, Outcome, Resolver
from s3volume.store import InMemoryObjectStore, ListingPage, ObjectStore, StoredObject
from s3volume.types import Reply, StoredEntry, Timestamp, Value
from s3volume.volume import StorageProtocol, Volume, open_volume, parse_storage_uri

__all__ = [
    "__version__",
    "KeyExpr",
    "Timestamp",
    "Value",
    "StoredEntry",
    "Reply",
    "KeyCodec",
    "encode_entry",
    "decode_entry",
    "ObjectStore",
    "InMemoryObjectStore",
    "StoredObject",
    "ListingPage",
    "Resolver",
    "LastWriterWinsResolver",
    "Outcome",
    "QueryStream",
    "QueryDiagnostics",
    "BackendConfig",
    "Credentials",
    "VolumeProperties",
    "StorageProtocol",
    "Volume",
    "open_volume",
    "parse_storage_uri",
    "BackendError",
    "InvalidKeyError",
    "InvalidValueError",
    "CorruptEntryError",
    "UpstreamError",
    "UnreachableError",
    "ListingTruncatedError",
    "InvalidConfigError",
    "VolumeClosedError",
]
