from __future__ import annotations

"""
Canonical CBOR codec
--------------------

Deterministic CBOR over `cbor2` (RFC 8949 canonical mode) for the values the
record layer persists.

Supported Python types:
- None, bool, int, float, bytes, str, list/tuple, dict
- datetime (naive values are taken as UTC; encoded as tag 0 strings)
- dataclasses (encoded as maps of field name -> value)

Equal values always encode to identical bytes, so a value read back from the
store and re-inserted does not change its stored representation.

Public API:
- dumps(obj) -> bytes
- loads(b: bytes) -> object
"""

from dataclasses import asdict, is_dataclass
from datetime import timezone
from typing import Any

import cbor2

from ..errors import DeserializationError, SerializationError


def _default(encoder: "cbor2.CBOREncoder", value: Any) -> None:
    if is_dataclass(value) and not isinstance(value, type):
        encoder.encode(asdict(value))
        return
    raise cbor2.CBOREncodeError(f"cannot encode {type(value).__name__}")


def dumps(obj: Any) -> bytes:
    """Encode `obj` to canonical CBOR bytes."""
    try:
        return cbor2.dumps(obj, canonical=True, timezone=timezone.utc, default=_default)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as e:
        raise SerializationError(str(e), type=type(obj).__name__) from e


def loads(data: bytes) -> Any:
    """Decode CBOR bytes produced by `dumps`."""
    try:
        return cbor2.loads(data)
    except (cbor2.CBORDecodeError, ValueError, EOFError) as e:
        raise DeserializationError(str(e), size=len(data)) from e


__all__ = ["dumps", "loads"]
