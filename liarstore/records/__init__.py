"""
liarstore.records
=================

Game records (games, guesses, private keys) persisted in OrderedStores and
the service that creates and lists them.
"""

from __future__ import annotations

from .keys import generate_secp256k1_keypair
from .models import Game, Guess, PrivateKeyRecord
from .service import GameService, new_uuid, utc_now
from .stores import RecordStores

__all__ = [
    "Game",
    "Guess",
    "PrivateKeyRecord",
    "RecordStores",
    "GameService",
    "generate_secp256k1_keypair",
    "utc_now",
    "new_uuid",
]
