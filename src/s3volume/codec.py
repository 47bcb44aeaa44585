"""Bidirectional mapping between bus key expressions and object keys."""

from __future__ import annotations

from urllib.parse import quote, unquote

from s3volume.errors import InvalidKeyError
from s3volume.keyexpr import KeyExpr, ensure_keyexpr

# Object name used for the key equal to the strip prefix itself. A literal "@"
# inside a chunk is always escaped, so this name cannot collide with a real key.
EMPTY_KEY_OBJECT = "@"

MAX_OBJECT_KEY_BYTES = 1024


def _escape_chunk(chunk: str) -> str:
    return quote(chunk, safe="")


def _unescape_chunk(part: str) -> str | None:
    chunk = unquote(part, errors="strict")
    # Reject names we could not have produced.
    if _escape_chunk(chunk) != part:
        return None
    return chunk


class KeyCodec:
    """Translate keys between the bus and the object store for one volume.

    Every object lives under ``root_prefix``. When ``strip_prefix`` is set, only
    keys under it belong to the volume and the prefix is removed before the key
    is written, then added back on decode.
    """

    def __init__(self, *, root_prefix: str = "", strip_prefix: KeyExpr | str | None = None) -> None:
        self.root = root_prefix.strip("/")
        self.strip_prefix = ensure_keyexpr(strip_prefix) if strip_prefix else None
        if self.strip_prefix is not None and self.strip_prefix.is_wild:
            raise ValueError(f"strip_prefix must be concrete, got '{self.strip_prefix}'")

    # --- Key/object helpers ---

    def _k(self, rel_path: str) -> str:
        return f"{self.root}/{rel_path}" if self.root else rel_path

    @property
    def root_listing_prefix(self) -> str:
        return f"{self.root}/" if self.root else ""

    def _strip_chunks(self) -> tuple[str, ...]:
        return self.strip_prefix.chunks if self.strip_prefix is not None else ()

    def _relative_chunks(self, key: KeyExpr) -> tuple[str, ...]:
        strip = self._strip_chunks()
        chunks = key.chunks
        if chunks[: len(strip)] != strip:
            raise InvalidKeyError(key.text, f"not under strip prefix '{self.strip_prefix}'")
        return chunks[len(strip) :]

    @staticmethod
    def _join_escaped(chunks: tuple[str, ...]) -> str:
        if not chunks:
            return EMPTY_KEY_OBJECT
        return "/".join(_escape_chunk(c) for c in chunks)

    # --- Public API ---

    def encode(self, key: KeyExpr | str) -> str:
        """Return the object key for a concrete key expression."""
        try:
            key = ensure_keyexpr(key)
        except ValueError as e:
            raise InvalidKeyError(str(key), str(e)) from e
        if key.is_wild:
            raise InvalidKeyError(key.text, "wildcards are not allowed here")
        object_key = self._k(self._join_escaped(self._relative_chunks(key)))
        if len(object_key.encode("utf-8")) > MAX_OBJECT_KEY_BYTES:
            raise InvalidKeyError(key.text, f"object key exceeds {MAX_OBJECT_KEY_BYTES} bytes")
        return object_key

    def decode(self, object_key: str) -> KeyExpr | None:
        """Return the key expression for an object, or None if it is not one of ours."""
        prefix = self.root_listing_prefix
        if not object_key.startswith(prefix):
            return None
        rel = object_key[len(prefix) :]
        if not rel:
            return None
        if rel == EMPTY_KEY_OBJECT:
            chunks: tuple[str, ...] = ()
        else:
            decoded: list[str] = []
            for part in rel.split("/"):
                if not part:
                    return None
                try:
                    chunk = _unescape_chunk(part)
                except UnicodeDecodeError:
                    return None
                if chunk is None:
                    return None
                decoded.append(chunk)
            chunks = tuple(decoded)
        full = self._strip_chunks() + chunks
        if not full:
            return None
        try:
            key = KeyExpr.from_chunks(full)
        except ValueError:
            return None
        return None if key.is_wild else key

    def listing_prefix(self, pattern: KeyExpr | str) -> str | None:
        """Object-key prefix covering every object the pattern can match.

        Returns None when the pattern cannot select any key of this volume.
        """
        pattern = ensure_keyexpr(pattern)
        strip = self._strip_chunks()
        concrete = pattern.concrete_prefix()
        if not pattern.is_wild:
            if concrete[: len(strip)] != strip:
                return None
            return self.encode(pattern)
        if concrete[: len(strip)] == strip:
            rel = concrete[len(strip) :]
        elif strip[: len(concrete)] == concrete:
            rel = ()
        else:
            return None
        if not rel:
            return self.root_listing_prefix
        return self._k("/".join(_escape_chunk(c) for c in rel))
