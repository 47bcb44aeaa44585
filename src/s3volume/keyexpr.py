"""Key expressions: hierarchical bus keys and wildcard patterns."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

SINGLE_WILD = "*"
DOUBLE_WILD = "**"
SUB_WILD = "$*"

_FORBIDDEN_CHARS = frozenset("#?")


def _validate_chunk(text: str, chunk: str) -> None:
    if not chunk:
        raise ValueError(f"Key expression '{text}' has an empty chunk")
    bad = _FORBIDDEN_CHARS.intersection(chunk)
    if bad:
        raise ValueError(f"Key expression '{text}' contains forbidden character(s) {sorted(bad)}")
    if chunk in (SINGLE_WILD, DOUBLE_WILD):
        return
    rest = chunk.replace(SUB_WILD, "")
    if "*" in rest:
        raise ValueError(f"Key expression '{text}': '*' must be a whole chunk or written '$*'")
    if "$" in rest:
        raise ValueError(f"Key expression '{text}': '$' is only allowed as part of '$*'")


def _is_wild_chunk(chunk: str) -> bool:
    return "*" in chunk


@lru_cache(maxsize=512)
def _sub_chunk_regex(chunk: str) -> re.Pattern[str]:
    parts = [re.escape(p) for p in chunk.split(SUB_WILD)]
    return re.compile(".*".join(parts), re.DOTALL)


def _chunk_matches(pattern: str, chunk: str) -> bool:
    if not _is_wild_chunk(pattern):
        return pattern == chunk
    # Verbatim chunks are only matched literally.
    if chunk.startswith("@"):
        return False
    if pattern == SINGLE_WILD:
        return True
    return _sub_chunk_regex(pattern).fullmatch(chunk) is not None


def chunks_match(pattern: tuple[str, ...], key: tuple[str, ...]) -> bool:
    """Return True if the concrete ``key`` chunks are matched by ``pattern`` chunks."""

    @lru_cache(maxsize=None)
    def walk(i: int, j: int) -> bool:
        if i == len(pattern):
            return j == len(key)
        head = pattern[i]
        if head == DOUBLE_WILD:
            if walk(i + 1, j):
                return True
            return j < len(key) and not key[j].startswith("@") and walk(i, j + 1)
        if j == len(key):
            return False
        return _chunk_matches(head, key[j]) and walk(i + 1, j + 1)

    return walk(0, 0)


@dataclass(frozen=True)
class KeyExpr:
    """A ``/``-delimited bus key, possibly containing wildcards.

    ``*`` matches exactly one chunk, ``**`` matches zero or more chunks and
    ``$*`` matches any run of characters inside a single chunk. Chunks starting
    with ``@`` are verbatim and never matched by a wildcard.
    """

    text: str

    def __post_init__(self) -> None:
        text = self.text
        if not isinstance(text, str):
            raise TypeError(f"Key expression must be a str, got {type(text).__name__}")
        if not text:
            raise ValueError("Key expression must not be empty")
        if text.startswith("/") or text.endswith("/"):
            raise ValueError(f"Key expression '{text}' must not start or end with '/'")
        for chunk in text.split("/"):
            _validate_chunk(text, chunk)

    @classmethod
    def from_chunks(cls, chunks: tuple[str, ...] | list[str]) -> KeyExpr:
        return cls("/".join(chunks))

    @property
    def chunks(self) -> tuple[str, ...]:
        return tuple(self.text.split("/"))

    @property
    def is_wild(self) -> bool:
        return "*" in self.text

    def concrete_prefix(self) -> tuple[str, ...]:
        """Chunks before the first chunk holding a wildcard."""
        out: list[str] = []
        for chunk in self.chunks:
            if _is_wild_chunk(chunk):
                break
            out.append(chunk)
        return tuple(out)

    def matches(self, key: KeyExpr | str) -> bool:
        """Return True if the concrete ``key`` is selected by this expression."""
        other = key if isinstance(key, KeyExpr) else KeyExpr(key)
        if other.is_wild:
            raise ValueError(f"Cannot match against wildcard key '{other}'")
        if not self.is_wild:
            return self.text == other.text
        return chunks_match(self.chunks, other.chunks)

    def join(self, suffix: KeyExpr | str) -> KeyExpr:
        return KeyExpr(f"{self.text}/{suffix}")

    def __truediv__(self, suffix: KeyExpr | str) -> KeyExpr:
        return self.join(suffix)

    def __str__(self) -> str:
        return self.text


def ensure_keyexpr(value: KeyExpr | str) -> KeyExpr:
    return value if isinstance(value, KeyExpr) else KeyExpr(value)
