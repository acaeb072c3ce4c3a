"""
liarstore.encoding
==================

Canonical CBOR used for persisted record values.

- cbor.py: canonical CBOR dumps/loads (sorted map keys, deterministic)
"""

from __future__ import annotations

from .cbor import dumps as cbor_dumps
from .cbor import loads as cbor_loads

__all__ = ["cbor_dumps", "cbor_loads"]
