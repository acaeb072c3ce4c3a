"""
liarstore: a durable ordered key-value store and the game-records service
built on it.

- liarstore.db       ordered KV backends and the typed OrderedStore
- liarstore.records  games, guesses and keypairs persisted in OrderedStores
- liarstore.cli      operator CLI (`liarstore ...`)

Only re-exports the version here to keep import-time side effects near zero.
"""

from __future__ import annotations

from .version import __version__


def get_version() -> str:
    """Return the semantic version string for this package."""
    return __version__


__all__ = ["__version__", "get_version"]
