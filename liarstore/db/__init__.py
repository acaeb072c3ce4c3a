from __future__ import annotations

"""
liarstore.db
============

Facade over the ordered KV backends and the typed `OrderedStore`.

Backends
--------
- DurableKV: copy-on-write B-tree in a single page file (default)
- MemoryKV: sorted in-process map (tests, scratch use)

URIs
----
- "file:///path/to/games.ldb"   → DurableKV at that path
- "memory://"                   → MemoryKV
- Bare paths                    → DurableKV (a `Path` is accepted too)

API
---
- open_kv(uri, *, config=None, create=True) -> OrderedKV
- open_store(uri, key_codec=None, value_codec=None, *, config=None) -> OrderedStore

Example
-------
>>> from liarstore.db import open_store
>>> from liarstore.db.codec import CBORValueCodec
>>> s = open_store("memory://", value_codec=CBORValueCodec())
>>> s.insert("g1", {"won": False})
>>> s.get("g1")
{'won': False}
"""

import os
from typing import Any, Optional, Tuple, Union

from ..config import Config, StoreConfig
from ..errors import ConfigError
from .codec import (
    BytesKeyCodec,
    CBORValueCodec,
    IntKeyCodec,
    KeyCodec,
    RawValueCodec,
    RecordCodec,
    StrKeyCodec,
    ValueCodec,
)
from .durable import DurableKV, open_durable_kv
from .kv import OrderedKV, ReadOnlyKV
from .memory import MemoryKV
from .ordered import OrderedStore

PathLike = Union[str, "os.PathLike[str]"]


def _parse_uri(uri: PathLike) -> Tuple[str, str]:
    """
    Parse a store URI into (backend, path).

    Returns:
        ("file", path) or ("memory", "")
    """
    u = os.fspath(uri).strip()
    if u.startswith("memory://"):
        return ("memory", "")
    if u.startswith("file://"):
        path = u[len("file://") :]
        if not path:
            raise ConfigError("file URI has no path", uri=u)
        return ("file", path)
    if "://" in u:
        raise ConfigError("unsupported store URI scheme", uri=u)
    if not u:
        raise ConfigError("empty store path")
    return ("file", u)


def _store_config(config: Optional[Union[Config, StoreConfig]]) -> StoreConfig:
    if config is None:
        return StoreConfig()
    if isinstance(config, Config):
        return config.store
    return config


def open_kv(
    uri: PathLike,
    *,
    config: Optional[Union[Config, StoreConfig]] = None,
    create: bool = True,
) -> OrderedKV:
    """
    Open a byte-level ordered KV by URI. See module docstring for supported forms.

    Raises:
        ConfigError for malformed URIs or invalid store settings.
        StorageIOError / CorruptionError when the file cannot be opened or recovered.
    """
    backend, path = _parse_uri(uri)
    if backend == "memory":
        return MemoryKV(page_size=_store_config(config).page_size)
    return open_durable_kv(path, config=_store_config(config), create=create)


def open_store(
    uri: PathLike,
    key_codec: Optional[KeyCodec[Any]] = None,
    value_codec: Optional[ValueCodec[Any]] = None,
    *,
    config: Optional[Union[Config, StoreConfig]] = None,
    create: bool = True,
) -> OrderedStore[Any, Any]:
    """Open a typed store; keys default to UTF-8 strings, values to raw bytes."""
    kv = open_kv(uri, config=config, create=create)
    return OrderedStore(kv, key_codec, value_codec)


__all__ = [
    # interfaces
    "OrderedKV",
    "ReadOnlyKV",
    "OrderedStore",
    # backends
    "DurableKV",
    "MemoryKV",
    # codecs
    "KeyCodec",
    "ValueCodec",
    "StrKeyCodec",
    "BytesKeyCodec",
    "IntKeyCodec",
    "RawValueCodec",
    "CBORValueCodec",
    "RecordCodec",
    # helpers
    "open_kv",
    "open_store",
]
