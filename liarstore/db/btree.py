from __future__ import annotations

"""
Copy-on-write B-tree over the pager.

Nodes are never modified in place. A mutation copies every node on the path
from the root to the affected leaf into fresh pages (plus any sibling it
merges with), so the previous root still describes a complete, consistent
tree until the superblock moves.

Nodes are sized in bytes, not by fan-out: a node splits when its encoding no
longer fits a page, and a node that drops under a quarter of a page after a
removal merges with (or borrows from) an adjacent sibling.
"""

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from ..errors import CorruptionError
from .page import (NO_PAGE, Branch, Leaf, Node, ValueRef, branch_entry_size,
                   capacity, leaf_entry_size, max_key_size)
from .pager import Pager, Txn

# (separator, page id); the first element of a split result has no separator.
Part = Tuple[Optional[bytes], int]


def _best_split(lo: int, hi: int, cost) -> int:
    """Index in [lo, hi] minimising the larger half, as computed by `cost`."""
    best, best_cost = lo, None
    for i in range(lo, hi + 1):
        c = cost(i)
        if best_cost is None or c < best_cost:
            best, best_cost = i, c
    return best


def split_leaf(leaf: Leaf) -> Tuple[Leaf, bytes, Leaf]:
    sizes = [leaf_entry_size(k, r) for k, r in zip(leaf.keys, leaf.refs)]
    total = sum(sizes)
    prefix = [0]
    for s in sizes:
        prefix.append(prefix[-1] + s)
    i = _best_split(1, len(sizes) - 1, lambda i: max(prefix[i], total - prefix[i]))
    left = Leaf(leaf.keys[:i], leaf.refs[:i])
    right = Leaf(leaf.keys[i:], leaf.refs[i:])
    return left, right.keys[0], right


def split_branch(branch: Branch) -> Tuple[Branch, bytes, Branch]:
    """Split around a promoted key, which moves up to the parent."""
    sizes = [branch_entry_size(k) for k in branch.keys]
    total = sum(sizes)
    prefix = [0]
    for s in sizes:
        prefix.append(prefix[-1] + s)
    m = _best_split(1, len(sizes) - 2, lambda m: max(prefix[m], total - prefix[m + 1]))
    left = Branch(branch.keys[:m], branch.children[: m + 1])
    right = Branch(branch.keys[m + 1 :], branch.children[m + 1 :])
    return left, branch.keys[m], right


def split_node(node: Node) -> Tuple[Node, bytes, Node]:
    if isinstance(node, Leaf):
        return split_leaf(node)
    return split_branch(node)


@dataclass
class VerifyReport:
    ok: bool = True
    entries: int = 0
    pages: int = 0
    depth: int = 0
    errors: List[str] = field(default_factory=list)

    def fail(self, msg: str) -> None:
        self.ok = False
        self.errors.append(msg)


class BTree:
    def __init__(self, pager: Pager) -> None:
        self._pager = pager
        self.capacity = capacity(pager.page_size)
        self.min_fill = self.capacity // 4
        self.max_key = max_key_size(pager.page_size)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, key: bytes) -> Optional[ValueRef]:
        pid = self._pager.root
        if pid == NO_PAGE:
            return None
        while True:
            node = self._pager.read_node(pid)
            if isinstance(node, Branch):
                pid = node.children[bisect_right(node.keys, key)]
                continue
            i = bisect_left(node.keys, key)
            if i < len(node.keys) and node.keys[i] == key:
                return node.refs[i]
            return None

    def get(self, key: bytes) -> Optional[bytes]:
        ref = self.find(key)
        return None if ref is None else self._pager.read_value(ref)

    def scan(
        self, lo: Optional[bytes] = None, hi: Optional[bytes] = None
    ) -> Iterator[Tuple[bytes, ValueRef]]:
        """In-order (key, ref) pairs with lo <= key < hi (either bound optional)."""
        root = self._pager.root
        if root != NO_PAGE:
            yield from self._scan(root, lo, hi)

    def _scan(
        self, pid: int, lo: Optional[bytes], hi: Optional[bytes]
    ) -> Iterator[Tuple[bytes, ValueRef]]:
        node = self._pager.read_node(pid)
        if isinstance(node, Leaf):
            start = 0 if lo is None else bisect_left(node.keys, lo)
            for k, r in zip(node.keys[start:], node.refs[start:]):
                if hi is not None and k >= hi:
                    return
                yield k, r
            return
        first = 0 if lo is None else bisect_right(node.keys, lo)
        for i in range(first, len(node.children)):
            if hi is not None and i > 0 and node.keys[i - 1] >= hi:
                return
            yield from self._scan(node.children[i], lo, hi)

    def items(
        self, lo: Optional[bytes] = None, hi: Optional[bytes] = None
    ) -> Iterator[Tuple[bytes, bytes]]:
        for k, r in self.scan(lo, hi):
            yield k, self._pager.read_value(r)

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    def insert(self, txn: Txn, key: bytes, value: bytes) -> Tuple[Optional[ValueRef], int]:
        """Stage `key -> value` in `txn`. Returns (previous ref or None, new root)."""
        ref = txn.store_value(value)
        root = self._pager.root
        if root == NO_PAGE:
            return None, txn.write_node(Leaf([key], [ref]))
        old, parts = self._insert(txn, root, key, ref)
        while len(parts) > 1:
            # Root split: grow the tree by one level.
            new_root = Branch([sep for sep, _ in parts[1:]], [pid for _, pid in parts])  # type: ignore[misc]
            parts = self._write(txn, new_root)
        return old, parts[0][1]

    def _insert(
        self, txn: Txn, pid: int, key: bytes, ref: ValueRef
    ) -> Tuple[Optional[ValueRef], List[Part]]:
        node = self._pager.read_node(pid)
        txn.free(pid)
        if isinstance(node, Leaf):
            keys, refs = list(node.keys), list(node.refs)
            i = bisect_left(keys, key)
            old = None
            if i < len(keys) and keys[i] == key:
                old = refs[i]
                refs[i] = ref
            else:
                keys.insert(i, key)
                refs.insert(i, ref)
            return old, self._write(txn, Leaf(keys, refs))

        i = bisect_right(node.keys, key)
        old, parts = self._insert(txn, node.children[i], key, ref)
        keys, children = list(node.keys), list(node.children)
        children[i] = parts[0][1]
        for j, (sep, child) in enumerate(parts[1:], start=1):
            keys.insert(i + j - 1, sep)  # type: ignore[arg-type]
            children.insert(i + j, child)
        return old, self._write(txn, Branch(keys, children))

    def _write(self, txn: Txn, node: Node) -> List[Part]:
        """Write `node`, splitting it first if it does not fit one page."""
        if node.size() <= self.capacity:
            return [(None, txn.write_node(node))]
        left, sep, right = split_node(node)
        return self._write(txn, left) + [
            (sep if n == 0 else s, p) for n, (s, p) in enumerate(self._write(txn, right))
        ]

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    def remove(self, txn: Txn, key: bytes) -> Tuple[Optional[ValueRef], int]:
        """Stage removal of `key`. Returns (removed ref or None, new root)."""
        root = self._pager.root
        if root == NO_PAGE:
            return None, root
        old, node = self._remove(txn, root, key)
        if old is None or node is None:
            return None, root
        if isinstance(node, Branch) and not node.keys:
            # Root with a single child: the child (already written) becomes root.
            return old, node.children[0]
        if isinstance(node, Leaf) and not node.keys:
            return old, NO_PAGE
        return old, txn.write_node(node)

    def _remove(
        self, txn: Txn, pid: int, key: bytes
    ) -> Tuple[Optional[ValueRef], Optional[Node]]:
        node = self._pager.read_node(pid)
        if isinstance(node, Leaf):
            i = bisect_left(node.keys, key)
            if i == len(node.keys) or node.keys[i] != key:
                return None, None
            txn.free(pid)
            return node.refs[i], Leaf(
                node.keys[:i] + node.keys[i + 1 :], node.refs[:i] + node.refs[i + 1 :]
            )

        i = bisect_right(node.keys, key)
        old, child = self._remove(txn, node.children[i], key)
        if old is None or child is None:
            return None, None
        txn.free(pid)
        keys, children = list(node.keys), list(node.children)
        if child.size() >= self.min_fill:
            children[i] = txn.write_node(child)
        else:
            self._rebalance(txn, keys, children, i, child)
        return old, Branch(keys, children)

    def _rebalance(
        self, txn: Txn, keys: List[bytes], children: List[int], i: int, child: Node
    ) -> None:
        """Merge the underfull `child` at index i with a sibling, or redistribute."""
        if i + 1 < len(children):
            li, ri = i, i + 1
            sib_pid = children[ri]
            left, right = child, self._pager.read_node(sib_pid)
        else:
            li, ri = i - 1, i
            sib_pid = children[li]
            left, right = self._pager.read_node(sib_pid), child
        txn.free(sib_pid)

        merged: Node
        if isinstance(left, Leaf) and isinstance(right, Leaf):
            merged = Leaf(left.keys + right.keys, left.refs + right.refs)
        elif isinstance(left, Branch) and isinstance(right, Branch):
            merged = Branch(left.keys + [keys[li]] + right.keys, left.children + right.children)
        else:
            raise CorruptionError("siblings at different depths", page=sib_pid)

        if merged.size() <= self.capacity:
            children[li] = txn.write_node(merged)
            del keys[li]
            del children[ri]
            return
        a, sep, b = split_node(merged)
        children[li] = txn.write_node(a)
        children[ri] = txn.write_node(b)
        keys[li] = sep

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, expected_entries: int) -> VerifyReport:
        """Walk the whole tree checking checksums, ordering and separator bounds."""
        report = VerifyReport()
        root = self._pager.root
        leaf_depths: set = set()
        if root != NO_PAGE:
            self._verify(root, None, None, 1, report, leaf_depths, is_root=True)
        if len(leaf_depths) > 1:
            report.fail(f"leaves at different depths: {sorted(leaf_depths)}")
        report.depth = max(leaf_depths) if leaf_depths else 0
        if report.entries != expected_entries:
            report.fail(
                f"entry count mismatch: superblock says {expected_entries}, tree has {report.entries}"
            )
        return report

    def _verify(
        self,
        pid: int,
        lo: Optional[bytes],
        hi: Optional[bytes],
        depth: int,
        report: VerifyReport,
        leaf_depths: set,
        *,
        is_root: bool = False,
    ) -> None:
        try:
            node = self._pager.read_node(pid)
        except CorruptionError as e:
            report.fail(f"page {pid}: {e.message}")
            return
        report.pages += 1
        for a, b in zip(node.keys, node.keys[1:]):
            if not a < b:
                report.fail(f"page {pid}: keys out of order")
                break
        if node.keys and ((lo is not None and node.keys[0] < lo) or (hi is not None and node.keys[-1] >= hi)):
            report.fail(f"page {pid}: key outside separator bounds")
        if node.size() > self.capacity:
            report.fail(f"page {pid}: node larger than a page")

        if isinstance(node, Leaf):
            if not node.keys:
                report.fail(f"page {pid}: empty leaf")
            leaf_depths.add(depth)
            report.entries += len(node.keys)
            for k, r in zip(node.keys, node.refs):
                if len(k) > self.max_key:
                    report.fail(f"page {pid}: key longer than {self.max_key} bytes")
                if r.is_overflow:
                    try:
                        report.pages += len(self._pager.overflow_pages(r))
                        self._pager.read_value(r)
                    except CorruptionError as e:
                        report.fail(f"page {pid}: overflow value: {e.message}")
            return

        if not node.keys:
            report.fail(f"page {pid}: branch without separators")
        bounds = [lo] + list(node.keys) + [hi]
        for n, child in enumerate(node.children):
            self._verify(child, bounds[n], bounds[n + 1], depth + 1, report, leaf_depths)


__all__ = ["BTree", "VerifyReport", "split_leaf", "split_branch", "split_node"]
