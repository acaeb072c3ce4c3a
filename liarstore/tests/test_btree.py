from __future__ import annotations

import random
from pathlib import Path

import pytest

from liarstore.db import DurableKV
from liarstore.db.btree import split_branch, split_leaf
from liarstore.db.page import Branch, Leaf, ValueRef
from liarstore.errors import InvalidKey


def _key(i: int) -> bytes:
    return b"key-%06d" % i


def test_split_leaf_balances_bytes() -> None:
    keys = [b"a", b"b", b"c", b"d"]
    refs = [ValueRef(inline=b"x" * n) for n in (100, 10, 10, 100)]
    left, sep, right = split_leaf(Leaf(keys, refs))
    assert left.keys == [b"a", b"b"]
    assert right.keys == [b"c", b"d"]
    assert sep == b"c"


def test_split_branch_promotes_middle_key() -> None:
    b = Branch([b"b", b"d", b"f"], [1, 2, 3, 4])
    left, sep, right = split_branch(b)
    assert sep == b"d"
    assert left == Branch([b"b"], [1, 2])
    assert right == Branch([b"f"], [3, 4])


def test_many_inserts_build_a_deep_valid_tree(small_kv: DurableKV) -> None:
    order = list(range(600))
    random.Random(7).shuffle(order)
    for i in order:
        assert small_kv.put(_key(i), b"v%d" % i) is None
    report = small_kv.verify()
    assert report.ok, report.errors
    assert report.depth >= 3
    assert report.entries == 600
    assert small_kv.keys() == [_key(i) for i in range(600)]
    assert small_kv.get(_key(321)) == b"v321"


def test_removals_merge_back_to_empty(small_kv: DurableKV) -> None:
    for i in range(400):
        small_kv.put(_key(i), b"v")
    order = list(range(400))
    random.Random(11).shuffle(order)
    for n, i in enumerate(order, start=1):
        assert small_kv.delete(_key(i)) == b"v"
        if n % 50 == 0:
            report = small_kv.verify()
            assert report.ok, report.errors
            assert report.entries == 400 - n
    assert len(small_kv) == 0
    stats = small_kv.stats()
    assert stats["root"] == 0
    # Every page went back to the free list.
    assert stats["free_pages"] == stats["pages"]


def test_root_collapses_after_shrinking(small_kv: DurableKV) -> None:
    for i in range(300):
        small_kv.put(_key(i), b"v")
    deep = small_kv.verify().depth
    for i in range(295):
        small_kv.delete(_key(i))
    report = small_kv.verify()
    assert report.ok
    assert report.depth < deep
    assert report.depth == 1


def test_overflow_values_round_trip(small_kv: DurableKV) -> None:
    big = bytes(range(256)) * 40  # ~10 KiB, many overflow pages
    small_kv.put(b"big", big)
    small_kv.put(b"small", b"s")
    assert small_kv.get(b"big") == big
    assert small_kv.items() == [(b"big", big), (b"small", b"s")]
    pages_with_big = small_kv.stats()["pages"] - small_kv.stats()["free_pages"]

    assert small_kv.put(b"big", b"tiny") == big
    live = small_kv.stats()["pages"] - small_kv.stats()["free_pages"]
    assert live < pages_with_big
    assert small_kv.verify().ok


def test_overflow_value_survives_reopen(store_path: Path) -> None:
    big = b"\xab" * 50_000
    with DurableKV(store_path, page_size=512) as kv:
        kv.put(b"blob", big)
    with DurableKV(store_path) as kv:
        assert kv.get(b"blob") == big
        assert kv.verify().ok


def test_max_key_size(small_kv: DurableKV) -> None:
    limit = small_kv.max_key_size
    assert limit == (512 - 20) // 8
    small_kv.put(b"k" * limit, b"ok")
    with pytest.raises(InvalidKey):
        small_kv.put(b"k" * (limit + 1), b"too long")
    with pytest.raises(InvalidKey):
        small_kv.get(b"")


def test_range_scan_via_prefix(small_kv: DurableKV) -> None:
    for name in (b"game:1", b"game:2", b"guess:1", b"key:1", b"gam"):
        small_kv.put(name, b"x")
    assert [k for k, _ in small_kv.iter_prefix(b"game:")] == [b"game:1", b"game:2"]
    assert [k for k, _ in small_kv.iter_prefix(b"g")] == [b"gam", b"game:1", b"game:2", b"guess:1"]
    assert len(list(small_kv.iter_prefix(b""))) == 5


def test_pagination(small_kv: DurableKV) -> None:
    for i in range(50):
        small_kv.put(_key(i), b"%d" % i)
    assert small_kv.values(10, 3) == [b"10", b"11", b"12"]
    assert small_kv.values(48) == [b"48", b"49"]
    assert small_kv.values(60) == []
    with pytest.raises(ValueError):
        small_kv.values(-1)
