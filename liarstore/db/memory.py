from __future__ import annotations

"""
In-memory ordered KV with the same contract as `DurableKV`, minus durability.

Used for `memory://` URIs and in tests. Keys live in a sorted list
(`bisect`) next to a dict of values.
"""

from bisect import bisect_left, insort
from typing import Dict, Iterator, List, Optional, Tuple

from ..config import DEFAULT_PAGE_SIZE
from ..errors import StoreClosed
from .kv import OrderedKV, check_key, check_value, paginate, prefix_hi
from .locks import RWLock
from .page import max_key_size


class MemoryKV(OrderedKV):
    __slots__ = ("_keys", "_data", "_lock", "_closed", "_max_key")

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        # Same key ceiling a file store with this page size enforces.
        self._max_key = max_key_size(page_size)
        self._keys: List[bytes] = []
        self._data: Dict[bytes, bytes] = {}
        self._lock = RWLock()
        self._closed = False

    @property
    def path(self) -> str:
        return "memory://"

    @property
    def max_key_size(self) -> int:
        return self._max_key

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosed(self.path)

    def get(self, key: bytes) -> Optional[bytes]:
        key = check_key(key, self._max_key)
        with self._lock.read():
            self._ensure_open()
            return self._data.get(key)

    def has(self, key: bytes) -> bool:
        key = check_key(key, self._max_key)
        with self._lock.read():
            self._ensure_open()
            return key in self._data

    def items(self, start: int = 0, length: Optional[int] = None) -> List[Tuple[bytes, bytes]]:
        with self._lock.read():
            self._ensure_open()
            return [(k, self._data[k]) for k in paginate(self._keys, start, length)]

    def keys(self) -> List[bytes]:
        with self._lock.read():
            self._ensure_open()
            return list(self._keys)

    def values(self, start: int = 0, length: Optional[int] = None) -> List[bytes]:
        return [v for _, v in self.items(start, length)]

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        prefix = bytes(prefix)
        with self._lock.read():
            self._ensure_open()
            lo = bisect_left(self._keys, prefix)
            hi_key = prefix_hi(prefix)
            hi = len(self._keys) if hi_key is None else bisect_left(self._keys, hi_key)
            rows = [(k, self._data[k]) for k in self._keys[lo:hi] if k.startswith(prefix)]
        return iter(rows)

    def __len__(self) -> int:
        with self._lock.read():
            self._ensure_open()
            return len(self._keys)

    def put(self, key: bytes, value: bytes) -> Optional[bytes]:
        key = check_key(key, self._max_key)
        value = check_value(value)
        with self._lock.write():
            self._ensure_open()
            old = self._data.get(key)
            if old is None:
                insort(self._keys, key)
            self._data[key] = value
            return old

    def delete(self, key: bytes) -> Optional[bytes]:
        key = check_key(key, self._max_key)
        with self._lock.write():
            self._ensure_open()
            old = self._data.pop(key, None)
            if old is not None:
                del self._keys[bisect_left(self._keys, key)]
            return old

    def stats(self) -> Dict[str, object]:
        with self._lock.read():
            self._ensure_open()
            return {"path": self.path, "entries": len(self._keys), "max_key_size": self._max_key}

    def close(self) -> None:
        with self._lock.write():
            self._closed = True

    def __enter__(self) -> "MemoryKV":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["MemoryKV"]
