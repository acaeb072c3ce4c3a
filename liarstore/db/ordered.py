from __future__ import annotations

"""
OrderedStore
============

Typed ordered map over an `OrderedKV` backend. Keys and values pass through
codecs; the backend only ever sees bytes. Every mutation is a single backend
call, so it inherits the backend's atomicity and durability: once `insert` or
`remove` returns on a file-backed store, the change survives a crash.

>>> from liarstore.db import open_store
>>> s = open_store("memory://")
>>> s.insert("g2", b"b"); s.insert("g1", b"a")
>>> s.values()
[b'a', b'b']
"""

from typing import Any, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from .codec import KeyCodec, RawValueCodec, StrKeyCodec, ValueCodec
from .kv import OrderedKV

K = TypeVar("K")
V = TypeVar("V")


class OrderedStore(Generic[K, V]):
    def __init__(
        self,
        kv: OrderedKV,
        key_codec: Optional[KeyCodec[K]] = None,
        value_codec: Optional[ValueCodec[V]] = None,
    ) -> None:
        self.kv = kv
        self.key_codec: KeyCodec[Any] = key_codec or StrKeyCodec()
        self.value_codec: ValueCodec[Any] = value_codec or RawValueCodec()

    def _decode(self, raw: Optional[bytes]) -> Optional[V]:
        return None if raw is None else self.value_codec.decode(raw)

    # --- core map operations ---

    def insert(self, key: K, value: V) -> Optional[V]:
        """Insert or overwrite `key`; returns the previous value, if any."""
        raw = self.value_codec.encode(value)
        return self._decode(self.kv.put(self.key_codec.encode(key), raw))

    def get(self, key: K) -> Optional[V]:
        return self._decode(self.kv.get(self.key_codec.encode(key)))

    def remove(self, key: K) -> Optional[V]:
        """Delete `key`; returns the removed value, or None if it was absent."""
        return self._decode(self.kv.delete(self.key_codec.encode(key)))

    def values(self, start: int = 0, length: Optional[int] = None) -> List[V]:
        """
        Values in ascending key order, as of one committed state.

        `start`/`length` select a window of that ordering.
        """
        return [self.value_codec.decode(v) for v in self.kv.values(start, length)]

    def __len__(self) -> int:
        return len(self.kv)

    # --- extras ---

    def contains(self, key: K) -> bool:
        return self.kv.has(self.key_codec.encode(key))

    def __contains__(self, key: object) -> bool:
        return self.contains(key)  # type: ignore[arg-type]

    def is_empty(self) -> bool:
        return len(self.kv) == 0

    def keys(self) -> List[K]:
        return [self.key_codec.decode(k) for k in self.kv.keys()]

    def items(self, start: int = 0, length: Optional[int] = None) -> List[Tuple[K, V]]:
        return [
            (self.key_codec.decode(k), self.value_codec.decode(v))
            for k, v in self.kv.items(start, length)
        ]

    def __iter__(self) -> Iterator[K]:
        return iter(self.keys())

    def stats(self) -> Dict[str, Any]:
        return dict(self.kv.stats())  # type: ignore[attr-defined]

    @property
    def path(self) -> str:
        return str(getattr(self.kv, "path", ""))

    def close(self) -> None:
        self.kv.close()

    def __enter__(self) -> "OrderedStore[K, V]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:  # pragma: no cover
        return f"OrderedStore(path={self.path!r})"


__all__ = ["OrderedStore"]
