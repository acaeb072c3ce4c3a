from __future__ import annotations

from pathlib import Path

import pytest

from liarstore.config import StoreConfig
from liarstore.config import load as load_config
from liarstore.db import (
    BytesKeyCodec,
    CBORValueCodec,
    DurableKV,
    IntKeyCodec,
    MemoryKV,
    OrderedStore,
    RecordCodec,
    StrKeyCodec,
    open_kv,
    open_store,
)
from liarstore.errors import (
    ConfigError,
    DeserializationError,
    InvalidKey,
    SerializationError,
    StoreClosed,
)
from liarstore.records import Guess


@pytest.fixture(params=["file", "memory"])
def games(request: pytest.FixtureRequest, tmp_path: Path):
    uri = f"file://{tmp_path / 'games.ldb'}" if request.param == "file" else "memory://"
    s = open_store(uri, value_codec=CBORValueCodec())
    yield s
    s.close()


def test_games_scenario(games: OrderedStore) -> None:
    assert games.insert("g2", {"won": True}) is None
    assert games.insert("g1", {"won": False}) is None
    assert games.values() == [{"won": False}, {"won": True}]
    assert games.keys() == ["g1", "g2"]

    assert games.remove("g1") == {"won": False}
    assert games.values() == [{"won": True}]
    assert len(games) == 1


def test_overwrite_and_absent_remove(games: OrderedStore) -> None:
    games.insert("g1", {"won": False})
    assert games.insert("g1", {"won": True}) == {"won": False}
    assert games.get("g1") == {"won": True}
    assert games.remove("nope") is None
    assert len(games) == 1
    assert games.get("nope") is None


def test_extras(games: OrderedStore) -> None:
    assert games.is_empty()
    games.insert("b", 2)
    games.insert("a", 1)
    games.insert("c", 3)
    assert "a" in games and games.contains("c")
    assert "z" not in games
    assert not games.is_empty()
    assert games.items() == [("a", 1), ("b", 2), ("c", 3)]
    assert games.values(1, 1) == [2]
    assert games.items(2) == [("c", 3)]
    assert list(games) == ["a", "b", "c"]
    assert games.stats()["entries"] == 3


def test_empty_key_is_invalid(games: OrderedStore) -> None:
    with pytest.raises(InvalidKey):
        games.insert("", {"won": False})
    with pytest.raises(InvalidKey):
        games.get(42)  # type: ignore[arg-type]


def test_string_keys_order_by_code_point() -> None:
    s = open_store("memory://")
    for k in ("é", "z", "Z", "a", "\U0001f600"):
        s.insert(k, k.encode("utf-8"))
    assert s.keys() == sorted(["é", "z", "Z", "a", "\U0001f600"])


def test_int_keys_order_numerically() -> None:
    s = OrderedStore(MemoryKV(), IntKeyCodec(), CBORValueCodec())
    for n in (300, 2, 1 << 40, 0):
        s.insert(n, str(n))
    assert s.keys() == [0, 2, 300, 1 << 40]
    with pytest.raises(InvalidKey):
        s.insert(-1, "neg")
    with pytest.raises(InvalidKey):
        s.insert(True, "bool")


def test_bytes_keys_pass_through() -> None:
    s = OrderedStore(MemoryKV(), BytesKeyCodec())
    s.insert(b"\x00\xff", b"a")
    s.insert(bytearray(b"\x00\x01"), b"b")
    assert s.keys() == [b"\x00\x01", b"\x00\xff"]
    assert all(type(k) is bytes for k in s.keys())
    assert s.get(memoryview(b"\x00\xff")) == b"a"
    with pytest.raises(InvalidKey):
        s.insert("text", b"c")
    with pytest.raises(InvalidKey):
        s.get(7)


def test_record_codec_rejects_other_types() -> None:
    s = open_store("memory://", value_codec=RecordCodec(Guess))
    with pytest.raises(SerializationError):
        s.insert("x", {"not": "a guess"})


def test_undecodable_value_raises() -> None:
    kv = MemoryKV()
    kv.put(b"g1", b"\xff\xff\xff")
    s = OrderedStore(kv, StrKeyCodec(), CBORValueCodec())
    with pytest.raises(DeserializationError):
        s.get("g1")
    kv.put(b"g2", b"\xa1ax\x01")  # {"x": 1}
    s2 = OrderedStore(kv, value_codec=RecordCodec(Guess))
    with pytest.raises(DeserializationError):
        s2.get("g2")


def test_raw_values_by_default(tmp_path: Path) -> None:
    with open_store(tmp_path / "raw.ldb") as s:
        s.insert("k", b"\x00\x01")
        assert s.get("k") == b"\x00\x01"
        with pytest.raises(SerializationError):
            s.insert("k", "not bytes")
    with pytest.raises(StoreClosed):
        s.get("k")


def test_open_kv_uris(tmp_path: Path) -> None:
    assert isinstance(open_kv("memory://"), MemoryKV)
    kv = open_kv(f"file://{tmp_path / 'a.ldb'}")
    assert isinstance(kv, DurableKV)
    kv.close()
    kv = open_kv(str(tmp_path / "b.ldb"), config=StoreConfig(page_size=1024))
    assert kv.stats()["page_size"] == 1024
    kv.close()
    cfg = load_config(store={"page_size": 2048})
    kv = open_kv(tmp_path / "c.ldb", config=cfg)
    assert kv.stats()["page_size"] == 2048
    kv.close()
    for bad in ("", "file://", "s3://bucket/x"):
        with pytest.raises(ConfigError):
            open_kv(bad)


def test_file_store_persists(tmp_path: Path) -> None:
    path = tmp_path / "games.ldb"
    with open_store(path, value_codec=CBORValueCodec()) as s:
        s.insert("g1", {"won": False})
        s.insert("g2", {"won": True})
    with open_store(path, value_codec=CBORValueCodec()) as s:
        assert s.values() == [{"won": False}, {"won": True}]
