from __future__ import annotations

"""
Ordered KV interface
====================

This module defines the backend-agnostic, byte-level ordered key–value
interface that `OrderedStore` is built on. Backends (`DurableKV`, `MemoryKV`)
implement it. This file is *pure interface + helpers* and contains no I/O.

Semantics every backend honours:

- Keys and values are raw bytes; keys are non-empty and ordered bytewise
  (memcmp), so iteration is in ascending key order.
- `put` and `delete` return the previous value (or None) and are atomic:
  a concurrent reader sees either the whole old or the whole new mapping.
- `items()`/`values()`/`keys()` return materialized snapshots taken under a
  shared lock; they never include a half-applied mutation.
- A durable backend has made the mutation recoverable before `put`/`delete`
  returns.

Example
-------
>>> from liarstore.db import open_kv
>>> kv = open_kv("memory://")
>>> kv.put(b"g1", b"hello")
>>> kv.get(b"g1")
b'hello'
"""

from typing import Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from ..errors import InvalidKey

# Absolute upper bound on key length; durable backends derive a tighter,
# page-size dependent limit (see liarstore.db.page.max_key_size).
MAX_KEY_BYTES = 8192


@runtime_checkable
class ReadOnlyKV(Protocol):
    """Minimal read-only ordered KV surface."""

    def get(self, key: bytes) -> Optional[bytes]:
        """Fetch value or None if missing."""
        ...

    def has(self, key: bytes) -> bool: ...

    def items(self, start: int = 0, length: Optional[int] = None) -> List[Tuple[bytes, bytes]]:
        """Snapshot of (key, value) pairs in ascending key order, optionally paginated."""
        ...

    def keys(self) -> List[bytes]: ...

    def values(self, start: int = 0, length: Optional[int] = None) -> List[bytes]: ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """Iterate (key, value) pairs whose key starts with `prefix`, in key order."""
        ...

    def __len__(self) -> int: ...

    def close(self) -> None: ...


@runtime_checkable
class OrderedKV(ReadOnlyKV, Protocol):
    """Full read/write ordered KV surface."""

    def put(self, key: bytes, value: bytes) -> Optional[bytes]:
        """Persist (key, value); overwrites and returns the previous value if any."""
        ...

    def delete(self, key: bytes) -> Optional[bytes]:
        """Remove key if present and return the removed value (idempotent)."""
        ...


# ---------------------------------------------------------------------------
# Portable helpers
# ---------------------------------------------------------------------------


def check_key(key: bytes, limit: int = MAX_KEY_BYTES) -> bytes:
    """Validate a raw key and return it as immutable bytes."""
    if not isinstance(key, (bytes, bytearray, memoryview)):
        raise InvalidKey("key must be bytes", type=type(key).__name__)
    kb = bytes(key)
    if not kb:
        raise InvalidKey("key must be non-empty")
    if len(kb) > limit:
        raise InvalidKey("key too long", size=len(kb), limit=limit)
    return kb


def check_value(value: bytes) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"value must be bytes, got {type(value).__name__}")
    return bytes(value)


def paginate(seq: List, start: int = 0, length: Optional[int] = None) -> List:
    if start < 0 or (length is not None and length < 0):
        raise ValueError("start/length must be non-negative")
    if length is None:
        return seq[start:]
    return seq[start : start + length]


def prefix_hi(prefix: bytes) -> Optional[bytes]:
    """
    Return the smallest byte string that is strictly greater than all keys that have
    `prefix` as a prefix (the lexicographic upper bound). If no such value exists
    (prefix is empty or all 0xFF), return None.

    Example: b"ab\x01" -> b"ab\x02"; b"\xff\xff" -> None
    """
    if not prefix:
        return None
    p = bytearray(prefix)
    for i in range(len(p) - 1, -1, -1):
        if p[i] != 0xFF:
            p[i] += 1
            del p[i + 1 :]
            return bytes(p)
    return None


def be_u64(n: int) -> bytes:
    if not (0 <= n < (1 << 64)):
        raise ValueError("be_u64 out of range")
    return n.to_bytes(8, "big")


__all__ = [
    "ReadOnlyKV",
    "OrderedKV",
    "MAX_KEY_BYTES",
    "check_key",
    "check_value",
    "paginate",
    "prefix_hi",
    "be_u64",
]
