from __future__ import annotations

"""
File-backed ordered KV
======================

`DurableKV` ties the pager and the copy-on-write B-tree together behind the
`OrderedKV` interface and adds the concurrency contract:

- `put`/`delete` take the write side of a readers/writer lock; every call is
  one transaction that is fsynced (pages, then superblock) before it returns.
- `get`, `has`, `items`, `keys`, `values`, `len` take the read side and
  materialize their result before releasing it, so a caller always observes
  a whole committed state.
- On any I/O failure the transaction is abandoned and the last committed
  state stays current; nothing is retried internally.

Example
-------
>>> kv = DurableKV("/tmp/games.ldb")
>>> kv.put(b"g1", b"{...}")
>>> [k for k, _ in kv.items()]
[b'g1']
>>> kv.close()
"""

import os
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..config import DEFAULT_CACHE_PAGES, DEFAULT_PAGE_SIZE, StoreConfig
from ..errors import StoreClosed
from ..logging import get_logger
from .btree import BTree, VerifyReport
from .kv import OrderedKV, check_key, check_value, paginate, prefix_hi
from .locks import RWLock
from .pager import PageFile, Pager

log = get_logger(__name__)


class DurableKV(OrderedKV):
    def __init__(
        self,
        path: Union[str, "os.PathLike[str]"],
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        sync: bool = True,
        cache_pages: int = DEFAULT_CACHE_PAGES,
        create: bool = True,
    ) -> None:
        StoreConfig(page_size=page_size, sync=sync, cache_pages=cache_pages).validate()
        self._lock = RWLock()
        self._closed = False
        file = PageFile(path, create=create)
        try:
            self._pager = Pager(file, page_size=page_size, sync=sync, cache_pages=cache_pages)
        except BaseException:
            file.close()
            raise
        self._tree = BTree(self._pager)

    @classmethod
    def from_config(
        cls, path: Union[str, "os.PathLike[str]"], cfg: StoreConfig, *, create: bool = True
    ) -> "DurableKV":
        return cls(
            path,
            page_size=cfg.page_size,
            sync=cfg.sync,
            cache_pages=cfg.cache_pages,
            create=create,
        )

    @property
    def path(self) -> str:
        return self._pager.path

    @property
    def max_key_size(self) -> int:
        return self._tree.max_key

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosed(self.path)

    # --- ReadOnlyKV ---

    def get(self, key: bytes) -> Optional[bytes]:
        key = check_key(key, self._tree.max_key)
        with self._lock.read():
            self._ensure_open()
            return self._tree.get(key)

    def has(self, key: bytes) -> bool:
        key = check_key(key, self._tree.max_key)
        with self._lock.read():
            self._ensure_open()
            return self._tree.find(key) is not None

    def items(self, start: int = 0, length: Optional[int] = None) -> List[Tuple[bytes, bytes]]:
        with self._lock.read():
            self._ensure_open()
            if start == 0 and length is None:
                return list(self._tree.items())
            window = paginate(list(self._tree.scan()), start, length)
            return [(k, self._pager.read_value(r)) for k, r in window]

    def keys(self) -> List[bytes]:
        with self._lock.read():
            self._ensure_open()
            return [k for k, _ in self._tree.scan()]

    def values(self, start: int = 0, length: Optional[int] = None) -> List[bytes]:
        return [v for _, v in self.items(start, length)]

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """Snapshot of the pairs under `prefix`, taken before the first item is yielded."""
        prefix = bytes(prefix)
        with self._lock.read():
            self._ensure_open()
            rows = list(self._tree.items(prefix or None, prefix_hi(prefix)))
        if not prefix_hi(prefix) and prefix:
            rows = [(k, v) for k, v in rows if k.startswith(prefix)]
        return iter(rows)

    def __len__(self) -> int:
        with self._lock.read():
            self._ensure_open()
            return self._pager.entries

    # --- OrderedKV ---

    def put(self, key: bytes, value: bytes) -> Optional[bytes]:
        key = check_key(key, self._tree.max_key)
        value = check_value(value)
        with self._lock.write():
            self._ensure_open()
            txn = self._pager.begin()
            try:
                old_ref, root = self._tree.insert(txn, key, value)
                old = None
                if old_ref is not None:
                    old = self._pager.read_value(old_ref)
                    txn.release_value(old_ref)
                entries = self._pager.entries + (0 if old_ref is not None else 1)
                self._pager.commit(txn, root, entries)
            finally:
                self._pager.abort(txn)
            return old

    def delete(self, key: bytes) -> Optional[bytes]:
        key = check_key(key, self._tree.max_key)
        with self._lock.write():
            self._ensure_open()
            txn = self._pager.begin()
            try:
                old_ref, root = self._tree.remove(txn, key)
                if old_ref is None:
                    return None
                old = self._pager.read_value(old_ref)
                txn.release_value(old_ref)
                self._pager.commit(txn, root, self._pager.entries - 1)
            finally:
                self._pager.abort(txn)
            return old

    # --- maintenance ---

    def verify(self) -> VerifyReport:
        """Full integrity walk; see BTree.verify."""
        with self._lock.read():
            self._ensure_open()
            report = self._tree.verify(self._pager.entries)
        if not report.ok:
            log.warning("verify failed", extra={"path": self.path, "errors": len(report.errors)})
        return report

    def stats(self) -> Dict[str, Any]:
        with self._lock.read():
            self._ensure_open()
            sb = self._pager.superblock
            return {
                "path": self.path,
                "page_size": sb.page_size,
                "generation": sb.generation,
                "root": sb.root,
                "entries": sb.entries,
                "pages": sb.page_count - 1,
                "free_pages": self._pager.free_pages,
                "max_key_size": self._tree.max_key,
            }

    def close(self) -> None:
        with self._lock.write():
            if self._closed:
                return
            self._closed = True
            self._pager.close()
        log.debug("closed store", extra={"path": self.path})

    def __enter__(self) -> "DurableKV":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:  # pragma: no cover
        return f"DurableKV(path={self.path!r})"


def open_durable_kv(
    path: Union[str, "os.PathLike[str]"],
    *,
    config: Optional[StoreConfig] = None,
    create: bool = True,
) -> DurableKV:
    """Open (or create) a file-backed store at `path`."""
    return DurableKV.from_config(path, config or StoreConfig(), create=create)


__all__ = ["DurableKV", "open_durable_kv"]
