from __future__ import annotations

import json

import pytest

from liarstore.errors import (
    ConfigError,
    CorruptionError,
    ErrorCode,
    InternalError,
    InvalidKey,
    NotFound,
    StorageIOError,
    StoreError,
)


def test_codes_and_retryable_flags() -> None:
    assert InvalidKey().code == ErrorCode.INVALID_KEY
    assert not InvalidKey().retryable
    io = StorageIOError("write failed", path="/x")
    assert io.code == ErrorCode.IO and io.retryable
    corrupt = CorruptionError(page=7)
    assert isinstance(corrupt, StorageIOError)
    assert corrupt.code == ErrorCode.CORRUPTION
    assert not corrupt.retryable
    assert corrupt.data == {"page": 7}


def test_not_found_carries_key_and_space() -> None:
    e = NotFound("g1", space="games")
    assert e.data == {"key": "g1", "space": "games"}
    assert "STORE/NOT_FOUND" in str(e)


def test_to_dict_is_json_safe() -> None:
    e = InvalidKey("key too long", key=b"\x01\x02", limit=59)
    d = e.to_dict()
    assert d["code"] == "STORE/INVALID_KEY"
    assert d["data"] == {"key": "0102", "limit": 59}
    json.dumps(d)


def test_cause_reported_from_raise_from() -> None:
    try:
        try:
            raise OSError(5, "Input/output error")
        except OSError as e:
            raise StorageIOError("write failed", path="/tmp/x", offset=4096) from e
    except StorageIOError as err:
        d = err.to_dict(include_cause=True)
        plain = err.to_dict()
    assert d["cause"]["type"] == "OSError"
    assert d["data"] == {"path": "/tmp/x", "offset": 4096}
    assert "cause" not in plain


def test_str_includes_data_preview() -> None:
    s = str(ConfigError("bad page size", field="page_size", value=3))
    assert s.startswith("STORE/CONFIG: bad page size")
    assert "field=page_size" in s
    assert str(InternalError()) == "STORE/INTERNAL: internal error"


def test_raised_errors_are_catchable_as_root() -> None:
    with pytest.raises(StoreError):
        raise CorruptionError("page checksum mismatch", page=3)
