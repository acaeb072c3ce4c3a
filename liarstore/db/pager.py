from __future__ import annotations

"""
Pager: page file, allocation, commit and recovery
=================================================

The pager owns the store file. It hands out fixed-size pages, reads and
verifies them, and turns a batch of freshly written pages plus a new root
into one atomic commit.

Commit protocol (shadow paging)
-------------------------------
1. Every page touched by the transaction was copied to a page that no
   committed tree references; write them all.
2. fsync.
3. Write the superblock for generation g+1 into slot (g+1) % 2.
4. fsync.
5. Advance the in-memory superblock; pages released by the transaction
   become allocatable.

A failure in steps 1-3 abandons the transaction: its pages go back to the
free set and the generation number is reused by the next attempt, since no
valid superblock names it. A failure in step 4 leaves the outcome open (the
new superblock may already be durable), so the pager refuses further
commits until the file is reopened and recovery settles it.

A crash before step 3 completes leaves the slot for generation g intact and
its whole tree untouched, so recovery lands on g. Pages released by commit
g+1 are only reused by commit g+2 or later, which is after g+1 is durable.

Recovery
--------
Read both superblock slots and pick the valid one with the highest
generation whose tree can be walked without checksum errors and without
meeting a page stamped with a later generation than the superblock. The
free-page set is rebuilt from that walk: every page id below `page_count` that is not
reachable is free. Pages written by a transaction whose superblock never
became durable are therefore discarded, always.
"""

import heapq
import os
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Union

from ..errors import CorruptionError, InternalError, StorageIOError, StoreClosed
from ..logging import get_logger
from .page import (FIRST_PAGE, HEADER_REGION, NO_PAGE, SLOT_SIZE,
                   SUPERBLOCK_SLOTS, Branch, Node, Superblock, ValueRef,
                   decode_node, decode_overflow, inline_limit, overflow_chunk,
                   page_offset, seal_node, seal_overflow, slot_offset)

log = get_logger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class PageFile:
    """Positional I/O on the store file. Every OSError surfaces as StorageIOError."""

    __slots__ = ("path", "_fd")

    def __init__(self, path: PathLike, *, create: bool = True) -> None:
        self.path = os.fspath(path)
        flags = os.O_RDWR | getattr(os, "O_BINARY", 0)
        if create:
            flags |= os.O_CREAT
            parent = os.path.dirname(os.path.abspath(self.path))
            try:
                os.makedirs(parent, exist_ok=True)
            except OSError as e:
                raise StorageIOError("cannot create store directory", path=parent) from e
        try:
            self._fd: Optional[int] = os.open(self.path, flags, 0o644)
        except FileNotFoundError as e:
            raise StorageIOError("store file not found", retryable=False, path=self.path) from e
        except OSError as e:
            raise StorageIOError(f"cannot open store file: {e.strerror}", path=self.path) from e

    @property
    def fd(self) -> int:
        if self._fd is None:
            raise StoreClosed(self.path)
        return self._fd

    def size(self) -> int:
        try:
            return os.fstat(self.fd).st_size
        except OSError as e:
            raise StorageIOError("fstat failed", path=self.path) from e

    def read_at(self, offset: int, n: int) -> bytes:
        try:
            return os.pread(self.fd, n, offset)
        except OSError as e:
            raise StorageIOError("read failed", path=self.path, offset=offset) from e

    def write_at(self, offset: int, data: bytes) -> None:
        view = memoryview(data)
        try:
            while view:
                written = os.pwrite(self.fd, view, offset)
                view = view[written:]
                offset += written
        except OSError as e:
            raise StorageIOError("write failed", path=self.path, offset=offset) from e

    def sync(self) -> None:
        try:
            os.fsync(self.fd)
        except OSError as e:
            raise StorageIOError("fsync failed", path=self.path) from e

    def close(self) -> None:
        if self._fd is not None:
            fd, self._fd = self._fd, None
            try:
                os.close(fd)
            except OSError as e:
                raise StorageIOError("close failed", path=self.path) from e


@dataclass
class Txn:
    """
    One write transaction. Collects sealed page images and released page ids;
    nothing reaches the file until `Pager.commit`.
    """

    pager: "Pager"
    generation: int
    page_count: int
    writes: Dict[int, bytes] = field(default_factory=dict)
    nodes: Dict[int, Node] = field(default_factory=dict)
    freed: List[int] = field(default_factory=list)
    reused: List[int] = field(default_factory=list)
    spare: List[int] = field(default_factory=list)
    done: bool = False

    def alloc(self) -> int:
        if self.spare:
            return self.spare.pop()
        free = self.pager._free
        if free:
            pid = heapq.heappop(free)
            self.pager._free_set.discard(pid)
            self.reused.append(pid)
            return pid
        pid = self.page_count
        self.page_count += 1
        return pid

    def write_node(self, node: Node) -> int:
        pid = self.alloc()
        self.writes[pid] = seal_node(node, self.generation, self.pager.page_size)
        self.nodes[pid] = node
        return pid

    def free(self, page_id: int) -> None:
        if page_id in self.writes:
            # Written by this transaction and already superseded.
            del self.writes[page_id]
            self.nodes.pop(page_id, None)
            self.spare.append(page_id)
            return
        self.freed.append(page_id)

    def store_value(self, value: bytes) -> ValueRef:
        """Keep small values inline; spill larger ones to an overflow chain."""
        ps = self.pager.page_size
        if len(value) <= inline_limit(ps):
            return ValueRef(inline=value)
        step = overflow_chunk(ps)
        chunks = [value[i : i + step] for i in range(0, len(value), step)]
        ids = [self.alloc() for _ in chunks]
        for n, (pid, chunk) in enumerate(zip(ids, chunks)):
            nxt = ids[n + 1] if n + 1 < len(ids) else NO_PAGE
            self.writes[pid] = seal_overflow(nxt, chunk, self.generation, ps)
        return ValueRef(page=ids[0], length=len(value))

    def release_value(self, ref: ValueRef) -> None:
        for pid in self.pager.overflow_pages(ref):
            self.free(pid)


class Pager:
    """
    Page allocation, caching, commit and recovery for one store file.

    Not thread-safe on its own; `DurableKV` serializes writers and keeps
    readers out while a commit is applied.
    """

    def __init__(
        self,
        file: PageFile,
        *,
        page_size: int,
        sync: bool = True,
        cache_pages: int = 1024,
    ) -> None:
        self._file = file
        self._sync = sync
        self._cache: "OrderedDict[int, Node]" = OrderedDict()
        self._cache_pages = cache_pages
        # Readers share the cache concurrently under the store's read lock.
        self._cache_lock = threading.Lock()
        self._free: List[int] = []
        self._free_set: Set[int] = set()
        # Set once a superblock reached the file but its fsync failed.
        self._failed: Optional[StorageIOError] = None
        self.page_size = page_size
        self._next_generation = 0
        self._super = self._recover(page_size)
        self.page_size = self._super.page_size

    # ------------------------------------------------------------------
    # Committed state
    # ------------------------------------------------------------------

    @property
    def path(self) -> str:
        return self._file.path

    @property
    def superblock(self) -> Superblock:
        return self._super

    @property
    def root(self) -> int:
        return self._super.root

    @property
    def entries(self) -> int:
        return self._super.entries

    @property
    def generation(self) -> int:
        return self._super.generation

    @property
    def free_pages(self) -> int:
        return len(self._free)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _read_page(self, page_id: int, limit: Optional[int] = None) -> bytes:
        bound = self._super.page_count if limit is None else limit
        if not (FIRST_PAGE <= page_id < bound):
            raise CorruptionError("page id out of range", page=page_id, page_count=bound)
        return self._file.read_at(page_offset(page_id, self.page_size), self.page_size)

    def read_node(
        self, page_id: int, *, limit: Optional[int] = None, max_generation: Optional[int] = None
    ) -> Node:
        with self._cache_lock:
            node = self._cache.get(page_id)
            if node is not None:
                self._cache.move_to_end(page_id)
                return node
        node = decode_node(page_id, self._read_page(page_id, limit), self.page_size, max_generation)
        self._cache_put(page_id, node)
        return node

    def overflow_pages(
        self, ref: ValueRef, *, limit: Optional[int] = None, max_generation: Optional[int] = None
    ) -> List[int]:
        """Page ids of an overflow chain, in chain order."""
        if not ref.is_overflow:
            return []
        ids: List[int] = []
        pid = ref.page
        while pid != NO_PAGE:
            if len(ids) * overflow_chunk(self.page_size) > ref.length:
                raise CorruptionError("overflow chain longer than value", page=ref.page)
            ids.append(pid)
            ov = decode_overflow(pid, self._read_page(pid, limit), self.page_size, max_generation)
            pid = ov.next_page
        return ids

    def read_value(self, ref: ValueRef) -> bytes:
        if ref.inline is not None:
            return ref.inline
        out = bytearray()
        pid = ref.page
        while pid != NO_PAGE and len(out) < ref.length:
            ov = decode_overflow(pid, self._read_page(pid), self.page_size)
            out += ov.chunk
            pid = ov.next_page
        if len(out) != ref.length:
            raise CorruptionError(
                "overflow value length mismatch", page=ref.page, expected=ref.length, got=len(out)
            )
        return bytes(out)

    def _cache_put(self, page_id: int, node: Node) -> None:
        if self._cache_pages <= 0:
            return
        with self._cache_lock:
            self._cache[page_id] = node
            self._cache.move_to_end(page_id)
            while len(self._cache) > self._cache_pages:
                self._cache.popitem(last=False)

    def walk(
        self, root: int, *, limit: Optional[int] = None, max_generation: Optional[int] = None
    ) -> Iterator[int]:
        """
        Yield every page id reachable from `root` (nodes and overflow pages).

        `max_generation` rejects pages stamped by a later commit than the
        superblock that owns `root`: such a page was reused after that
        superblock stopped being current.
        """
        if root == NO_PAGE:
            return
        stack = [root]
        seen: Set[int] = set()
        while stack:
            pid = stack.pop()
            if pid in seen:
                raise CorruptionError("page referenced twice", page=pid)
            seen.add(pid)
            node = self.read_node(pid, limit=limit, max_generation=max_generation)
            yield pid
            if isinstance(node, Branch):
                stack.extend(reversed(node.children))
            else:
                for ref in node.refs:
                    yield from self.overflow_pages(ref, limit=limit, max_generation=max_generation)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def failed(self) -> bool:
        return self._failed is not None

    def begin(self) -> Txn:
        if self._failed is not None:
            raise StorageIOError(
                "store must be reopened after a failed commit",
                retryable=False,
                path=self.path,
                generation=self._super.generation,
            ) from self._failed
        return Txn(pager=self, generation=self._next_generation, page_count=self._super.page_count)

    def commit(self, txn: Txn, root: int, entries: int) -> Superblock:
        if txn.done:
            raise InternalError("transaction already finished", generation=txn.generation)
        sb = Superblock(
            generation=txn.generation,
            root=root,
            page_count=txn.page_count,
            entries=entries,
            page_size=self.page_size,
        )
        try:
            for pid in sorted(txn.writes):
                self._file.write_at(page_offset(pid, self.page_size), txn.writes[pid])
            if self._sync:
                self._file.sync()
            self._file.write_at(slot_offset(sb.slot), sb.encode())
        except StorageIOError:
            # A failed or torn superblock write leaves its slot invalid, so no
            # durable state refers to this transaction.
            log.error(
                "commit failed; keeping previous generation",
                extra={"path": self.path, "generation": self._super.generation},
            )
            self.abort(txn)
            raise

        if self._sync:
            try:
                self._file.sync()
            except StorageIOError as e:
                # The new superblock may or may not be durable. Its pages stay
                # allocated and no further commit is accepted, so whichever
                # generation the next open finds is whole.
                txn.done = True
                self._failed = e
                log.error(
                    "superblock fsync failed; store needs reopening",
                    extra={"path": self.path, "generation": sb.generation},
                )
                raise StorageIOError(
                    "superblock fsync failed; commit outcome decided at next open",
                    retryable=False,
                    path=self.path,
                    generation=sb.generation,
                ) from e

        txn.done = True
        self._super = sb
        self._next_generation = sb.generation + 1
        for pid in txn.freed + txn.spare:
            self._cache.pop(pid, None)
            heapq.heappush(self._free, pid)
            self._free_set.add(pid)
        for pid in txn.writes:
            self._cache.pop(pid, None)
        for pid, node in txn.nodes.items():
            self._cache_put(pid, node)
        log.debug(
            "committed",
            extra={
                "path": self.path,
                "generation": sb.generation,
                "pages_written": len(txn.writes),
                "pages_freed": len(txn.freed),
            },
        )
        return sb

    def abort(self, txn: Txn) -> None:
        """Return pages taken from the free list; nothing reached the superblock."""
        if txn.done:
            return
        txn.done = True
        for pid in txn.reused:
            if pid not in self._free_set:
                heapq.heappush(self._free, pid)
                self._free_set.add(pid)
        for pid in txn.writes:
            self._cache.pop(pid, None)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def _recover(self, page_size: int) -> Superblock:
        size = self._file.size()
        head = self._file.read_at(0, HEADER_REGION) if size else b""
        if not head.strip(b"\x00"):
            # New file, or a crash before the first superblock reached disk.
            sb = Superblock(
                generation=0, root=NO_PAGE, page_count=FIRST_PAGE, entries=0, page_size=page_size
            )
            self._file.write_at(slot_offset(sb.slot), sb.encode())
            self._file.sync()
            log.info("created store", extra={"path": self.path, "page_size": page_size})
            self._next_generation = 1
            return sb

        candidates: List[Superblock] = []
        for slot in range(SUPERBLOCK_SLOTS):
            raw = head[slot_offset(slot) : slot_offset(slot) + SLOT_SIZE]
            sb = Superblock.decode(raw)
            if sb is not None and sb.slot == slot:
                candidates.append(sb)
            elif raw.strip(b"\x00"):
                log.warning("ignoring invalid superblock slot", extra={"path": self.path, "slot": slot})
        if not candidates:
            raise CorruptionError("no valid superblock", path=self.path)

        candidates.sort(key=lambda s: s.generation, reverse=True)
        newest = candidates[0].generation
        last_err: Optional[CorruptionError] = None
        for sb in candidates:
            self.page_size = sb.page_size
            self._cache.clear()
            try:
                reachable = set(
                    self.walk(sb.root, limit=sb.page_count, max_generation=sb.generation)
                )
            except CorruptionError as e:
                log.warning(
                    "superblock tree unreadable; trying older generation",
                    extra={"path": self.path, "generation": sb.generation, "err": str(e)},
                )
                last_err = e
                continue
            self._free = [p for p in range(FIRST_PAGE, sb.page_count) if p not in reachable]
            heapq.heapify(self._free)
            self._free_set = set(self._free)
            self._next_generation = self._generation_after(sb, newest)
            if self._next_generation > sb.generation + 1:
                log.warning(
                    "skipping generations of an abandoned superblock",
                    extra={"path": self.path, "generation": sb.generation, "next": self._next_generation},
                )
            if sb.page_size != page_size:
                log.info(
                    "using on-disk page size",
                    extra={"path": self.path, "page_size": sb.page_size, "requested": page_size},
                )
            log.info(
                "recovered store",
                extra={
                    "path": self.path,
                    "generation": sb.generation,
                    "entries": sb.entries,
                    "pages": sb.page_count - FIRST_PAGE,
                    "free_pages": len(self._free),
                },
            )
            return sb
        raise CorruptionError("no recoverable generation", path=self.path) from last_err

    @staticmethod
    def _generation_after(sb: Superblock, newest: int) -> int:
        """
        First generation to commit after recovering `sb`.

        When a newer superblock was passed over, its number is skipped; the
        result keeps `g % 2` pointing at that newer slot, never at `sb`.
        """
        gen = sb.generation + 1
        while gen <= newest:
            gen += 2
        return gen

    def close(self) -> None:
        self._cache.clear()
        self._file.close()


__all__ = ["PageFile", "Pager", "Txn"]
