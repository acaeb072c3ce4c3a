from __future__ import annotations

"""
Key and value codecs used by `OrderedStore` to move between typed Python
values and the raw bytes the KV backends store.

Key codecs must be order-preserving: `encode(a) < encode(b)` (bytewise)
exactly when `a < b`. UTF-8 has this property for `str` (code-point order),
and a fixed-width big-endian encoding has it for non-negative ints.
"""

from typing import Any, Callable, Generic, Protocol, Type, TypeVar

from ..encoding import cbor_dumps, cbor_loads
from ..errors import DeserializationError, InvalidKey, SerializationError
from .kv import be_u64

K = TypeVar("K")
V = TypeVar("V")
R = TypeVar("R")


class KeyCodec(Protocol[K]):
    def encode(self, key: K) -> bytes: ...
    def decode(self, raw: bytes) -> K: ...


class ValueCodec(Protocol[V]):
    def encode(self, value: V) -> bytes: ...
    def decode(self, raw: bytes) -> V: ...


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class StrKeyCodec:
    """UTF-8 string keys (the default)."""

    def encode(self, key: str) -> bytes:
        if not isinstance(key, str):
            raise InvalidKey("key must be a string", type=type(key).__name__)
        if not key:
            raise InvalidKey("key must not be empty")
        try:
            return key.encode("utf-8")
        except UnicodeEncodeError as e:
            raise InvalidKey("key is not valid unicode", reason=str(e)) from e

    def decode(self, raw: bytes) -> str:
        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DeserializationError("stored key is not utf-8", reason=str(e)) from e


class BytesKeyCodec:
    def encode(self, key: bytes) -> bytes:
        if not isinstance(key, (bytes, bytearray, memoryview)):
            raise InvalidKey("key must be bytes", type=type(key).__name__)
        return bytes(key)

    def decode(self, raw: bytes) -> bytes:
        return bytes(raw)


class IntKeyCodec:
    """Non-negative integers as 8-byte big-endian."""

    def encode(self, key: int) -> bytes:
        if isinstance(key, bool) or not isinstance(key, int):
            raise InvalidKey("key must be an int", type=type(key).__name__)
        if key < 0 or key >= 1 << 64:
            raise InvalidKey("int key out of u64 range", key=key)
        return be_u64(key)

    def decode(self, raw: bytes) -> int:
        if len(raw) != 8:
            raise DeserializationError("int key must be 8 bytes", length=len(raw))
        return int.from_bytes(raw, "big")


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


class RawValueCodec:
    def encode(self, value: bytes) -> bytes:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise SerializationError("value must be bytes", type=type(value).__name__)
        return bytes(value)

    def decode(self, raw: bytes) -> bytes:
        return bytes(raw)


class CBORValueCodec:
    """Any CBOR-encodable value, canonical encoding."""

    def encode(self, value: Any) -> bytes:
        return cbor_dumps(value)

    def decode(self, raw: bytes) -> Any:
        return cbor_loads(raw)


class RecordCodec(Generic[R]):
    """
    Records exposing `to_obj()` and a `from_obj(o)` constructor, stored as
    canonical CBOR maps.
    """

    def __init__(self, cls: Type[R]) -> None:
        self.cls = cls
        self._from_obj: Callable[[Any], R] = getattr(cls, "from_obj")

    def encode(self, value: R) -> bytes:
        if not isinstance(value, self.cls):
            raise SerializationError(
                "unexpected record type",
                expected=self.cls.__name__,
                got=type(value).__name__,
            )
        return cbor_dumps(value.to_obj())  # type: ignore[attr-defined]

    def decode(self, raw: bytes) -> R:
        obj = cbor_loads(raw)
        if not isinstance(obj, dict):
            raise DeserializationError("record must be a map", record=self.cls.__name__)
        try:
            return self._from_obj(obj)
        except (KeyError, TypeError, ValueError) as e:
            raise DeserializationError(
                "malformed record", record=self.cls.__name__, reason=str(e)
            ) from e

    def __repr__(self) -> str:  # pragma: no cover
        return f"RecordCodec({self.cls.__name__})"


__all__ = [
    "KeyCodec",
    "ValueCodec",
    "StrKeyCodec",
    "BytesKeyCodec",
    "IntKeyCodec",
    "RawValueCodec",
    "CBORValueCodec",
    "RecordCodec",
]
