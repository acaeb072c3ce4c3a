from __future__ import annotations

import subprocess
import sys
import textwrap
import threading
from pathlib import Path

import pytest

from liarstore.db import DurableKV, MemoryKV
from liarstore.errors import InvalidKey, StoreClosed

REPO_ROOT = Path(__file__).resolve().parents[2]


def test_put_returns_previous_value(any_kv) -> None:
    assert any_kv.put(b"k", b"v1") is None
    assert any_kv.put(b"k", b"v2") == b"v1"
    assert any_kv.get(b"k") == b"v2"
    assert len(any_kv) == 1


def test_delete_absent_is_noop(any_kv) -> None:
    any_kv.put(b"a", b"1")
    assert any_kv.delete(b"zzz") is None
    assert len(any_kv) == 1
    assert any_kv.delete(b"a") == b"1"
    assert any_kv.delete(b"a") is None
    assert len(any_kv) == 0
    assert any_kv.get(b"a") is None


def test_iteration_is_bytewise_ordered(any_kv) -> None:
    for k in (b"b", b"\xff", b"a\x00", b"a", b"\x00"):
        any_kv.put(k, k)
    assert any_kv.keys() == [b"\x00", b"a", b"a\x00", b"b", b"\xff"]
    assert any_kv.values() == any_kv.keys()
    assert any_kv.has(b"a") and not any_kv.has(b"c")


def test_empty_and_wrong_type_keys(any_kv) -> None:
    with pytest.raises(InvalidKey):
        any_kv.put(b"", b"v")
    with pytest.raises(InvalidKey):
        any_kv.put("text", b"v")  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        any_kv.put(b"k", "text")  # type: ignore[arg-type]


def test_key_size_limit_matches_page_size(any_kv) -> None:
    limit = any_kv.max_key_size
    assert limit == 61  # 512-byte pages
    any_kv.put(b"k" * limit, b"v")
    with pytest.raises(InvalidKey):
        any_kv.put(b"k" * (limit + 1), b"v")
    with pytest.raises(InvalidKey):
        any_kv.get(b"k" * (limit + 1))


def test_default_key_limit_is_shared(kv: DurableKV) -> None:
    mem = MemoryKV()
    assert mem.max_key_size == kv.max_key_size == 509
    long_key = b"k" * (kv.max_key_size + 1)
    for store in (mem, kv):
        with pytest.raises(InvalidKey):
            store.put(long_key, b"v")


def test_iter_prefix_stops_at_prefix_end(any_kv) -> None:
    for k in (b"g\xff", b"g1", b"g1a", b"g2", b"h", b"f\xff"):
        any_kv.put(k, k)
    assert [k for k, _ in any_kv.iter_prefix(b"g1")] == [b"g1", b"g1a"]
    assert [k for k, _ in any_kv.iter_prefix(b"g")] == [b"g1", b"g1a", b"g2", b"g\xff"]
    assert [v for _, v in any_kv.iter_prefix(b"g\xff")] == [b"g\xff"]
    assert list(any_kv.iter_prefix(b"zz")) == []
    assert len(list(any_kv.iter_prefix(b""))) == 6


def test_closed_store_rejects_operations(any_kv) -> None:
    any_kv.put(b"k", b"v")
    any_kv.close()
    any_kv.close()  # idempotent
    with pytest.raises(StoreClosed):
        any_kv.get(b"k")
    with pytest.raises(StoreClosed):
        any_kv.put(b"k", b"v")
    with pytest.raises(StoreClosed):
        len(any_kv)


def test_concurrent_distinct_inserts(any_kv) -> None:
    n_threads, per_thread = 8, 40
    errors = []

    def worker(t: int) -> None:
        try:
            for i in range(per_thread):
                any_kv.put(b"t%02d-%03d" % (t, i), b"%d" % i)
        except Exception as e:  # surfaced below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(t,)) for t in range(n_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    expected = sorted(b"t%02d-%03d" % (t, i) for t in range(n_threads) for i in range(per_thread))
    assert any_kv.keys() == expected
    assert len(any_kv) == len(expected)


def test_readers_see_whole_states(small_kv: DurableKV) -> None:
    # Readers racing a writer only ever see sorted, duplicate-free snapshots.
    stop = threading.Event()
    seen_sizes = set()
    problems = []

    def reader() -> None:
        while not stop.is_set():
            items = small_kv.items()
            keys = [k for k, _ in items]
            if keys != sorted(set(keys)):
                problems.append(keys)
            seen_sizes.add(len(items))

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for r in readers:
        r.start()
    try:
        for i in range(150):
            small_kv.put(b"k%04d" % i, b"x" * (i % 50))
    finally:
        stop.set()
        for r in readers:
            r.join()
    assert not problems
    assert seen_sizes <= set(range(151))
    assert small_kv.verify().ok


def test_stats_shape(kv: DurableKV) -> None:
    kv.put(b"a", b"1")
    stats = kv.stats()
    assert set(stats) == {
        "path",
        "page_size",
        "generation",
        "root",
        "entries",
        "pages",
        "free_pages",
        "max_key_size",
    }
    assert stats["entries"] == 1 and stats["generation"] == 1
    assert MemoryKV().stats() == {"path": "memory://", "entries": 0, "max_key_size": kv.max_key_size}


def test_insert_survives_abrupt_exit(store_path: Path) -> None:
    script = textwrap.dedent(
        """
        import os, sys
        from liarstore.db import DurableKV

        kv = DurableKV(sys.argv[1])
        kv.put(b"g1", b"survives")
        kv.put(b"g2", b"also")
        kv.delete(b"g2")
        sys.stdout.write("done\\n")
        sys.stdout.flush()
        os._exit(0)  # no close(), no atexit, no buffer flush
        """
    )
    proc = subprocess.run(
        [sys.executable, "-c", script, str(store_path)],
        cwd=str(REPO_ROOT),
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout.strip() == "done"

    with DurableKV(store_path) as kv:
        assert kv.items() == [(b"g1", b"survives")]
        assert kv.verify().ok
