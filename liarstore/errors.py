"""
liarstore - errors
------------------

Every failure the store or the record layer reports is a `StoreError`:

- `code` is a stable string ("STORE/IO", "STORE/INVALID_KEY", ...) that the
  CLI prints and tests match on;
- `data` holds JSON-safe detail (paths, page ids, sizes, never values);
- `retryable` says whether repeating the same call can succeed.

`get`/`remove` on a store return None for absent keys; `NotFound` is only
raised by callers that require presence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping


class ErrorCode(str, Enum):
    INTERNAL = "STORE/INTERNAL"
    CONFIG = "STORE/CONFIG"
    INVALID_KEY = "STORE/INVALID_KEY"
    NOT_FOUND = "STORE/NOT_FOUND"
    CLOSED = "STORE/CLOSED"
    SERIALIZATION = "STORE/SERIALIZATION"
    DESERIALIZATION = "STORE/DESERIALIZATION"
    IO = "STORE/IO"
    CORRUPTION = "STORE/CORRUPTION"


@dataclass(eq=False)
class StoreError(Exception):
    """
    Root error for liarstore components.

    Attributes
    ----------
    code: ErrorCode
    message: str
        Short human hint; never includes key or value bytes.
    data: dict
        JSON-serializable detail.
    retryable: bool
        True for transient I/O failures, False for bad input and corruption.
    """

    code: ErrorCode
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False

    def __post_init__(self) -> None:
        self.data = _jsonmap(self.data)
        super().__init__(f"{self.code_str}: {self.message}")

    @property
    def code_str(self) -> str:
        return str(self.code.value) if isinstance(self.code, Enum) else str(self.code)

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """JSON-safe shape for logs and CLI output."""
        out: Dict[str, Any] = {
            "code": self.code_str,
            "message": self.message,
            "data": self.data,
            "retryable": self.retryable,
        }
        cause = self.__cause__
        if include_cause and cause is not None:
            out["cause"] = {"type": type(cause).__name__, "message": str(cause)}
        return out

    def __str__(self) -> str:
        s = f"{self.code_str}: {self.message}"
        if self.data:
            s += " [" + ", ".join(f"{k}={_short(v)}" for k, v in self.data.items()) + "]"
        return s


class InternalError(StoreError):
    """A broken engine invariant (bad page id, double commit)."""

    def __init__(self, message: str = "internal error", **data: Any) -> None:
        super().__init__(ErrorCode.INTERNAL, message, data)


class ConfigError(StoreError):
    def __init__(self, message: str = "invalid configuration", **data: Any) -> None:
        super().__init__(ErrorCode.CONFIG, message, data)


class InvalidKey(StoreError):
    """Empty, oversized or wrongly typed key."""

    def __init__(self, message: str = "invalid key", **data: Any) -> None:
        super().__init__(ErrorCode.INVALID_KEY, message, data)


class NotFound(StoreError):
    def __init__(self, key: str, space: str = "kv") -> None:
        super().__init__(ErrorCode.NOT_FOUND, "not found", {"key": key, "space": space})


class StoreClosed(StoreError):
    def __init__(self, path: str = "") -> None:
        super().__init__(ErrorCode.CLOSED, "store is closed", {"path": path})


class SerializationError(StoreError):
    def __init__(self, message: str = "serialization failed", **data: Any) -> None:
        super().__init__(ErrorCode.SERIALIZATION, message, data)


class DeserializationError(StoreError):
    def __init__(self, message: str = "deserialization failed", **data: Any) -> None:
        super().__init__(ErrorCode.DESERIALIZATION, message, data)


class StorageIOError(StoreError):
    """Read, write or fsync failed. The committed state is unchanged."""

    def __init__(self, message: str = "I/O error", retryable: bool = True, **data: Any) -> None:
        super().__init__(ErrorCode.IO, message, data, retryable)


class CorruptionError(StorageIOError):
    """Checksum, magic or structure mismatch in a page or superblock."""

    def __init__(self, message: str = "corrupt page", **data: Any) -> None:
        super().__init__(message, retryable=False, **data)
        self.code = ErrorCode.CORRUPTION
        self.args = (f"{self.code_str}: {self.message}",)


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(k): _json_safe(v) for k, v in data.items()}


def _json_safe(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, Mapping):
        return _jsonmap(v)
    if isinstance(v, (list, tuple)):
        return [_json_safe(x) for x in v]
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).hex()
    return str(v)


def _short(v: Any, limit: int = 96) -> str:
    s = str(v)
    return s if len(s) <= limit else s[:limit] + "..."


__all__ = [
    "ErrorCode",
    "StoreError",
    "InternalError",
    "ConfigError",
    "InvalidKey",
    "NotFound",
    "StoreClosed",
    "SerializationError",
    "DeserializationError",
    "StorageIOError",
    "CorruptionError",
]
