"""
Version for liarstore.

LIARSTORE_VERSION in the environment overrides the in-tree default (used by
packaging scripts that stamp builds).
"""

from __future__ import annotations

import os

DEFAULT_VERSION = "0.1.0"

__version__ = os.environ.get("LIARSTORE_VERSION", "").strip() or DEFAULT_VERSION

__all__ = ["__version__", "DEFAULT_VERSION"]
