from __future__ import annotations

"""
GameService: create games, record guesses, list games.

Collaborators are injected so tests can pin them:

- keypair: () -> (sk, pk)        default: fresh secp256k1 keypair
- clock:   () -> aware datetime  default: current UTC time (ms precision)
- new_id:  () -> str             default: random UUIDv4

A guess is stored in the guesses store only; the game record it names is not
rewritten, so `Game.guesses` stays as it was when the game was created.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..errors import InvalidKey, NotFound
from ..logging import get_logger
from .keys import KeypairFn, generate_secp256k1_keypair
from .models import Game, Guess, PrivateKeyRecord
from .stores import RecordStores

log = get_logger(__name__)


def utc_now() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def new_uuid() -> str:
    return str(uuid.uuid4())


class GameService:
    def __init__(
        self,
        stores: RecordStores,
        keypair: KeypairFn = generate_secp256k1_keypair,
        clock: Callable[[], datetime] = utc_now,
        new_id: Callable[[], str] = new_uuid,
    ) -> None:
        self.stores = stores
        self.keypair = keypair
        self.clock = clock
        self.new_id = new_id

    def create_game(self, is_demo: Optional[bool] = None) -> Game:
        """
        Generate a keypair and persist a new, unwon game with no guesses.

        The key record is written to the keys store before the game, so a
        crash between the two leaves at most an orphan key, never a game
        whose key is missing.
        """
        sk, pk = self.keypair()
        game_id = self.new_id()
        key = PrivateKeyRecord(
            id=self.new_id(),
            game_id=game_id,
            created_at=self.clock(),
            sk=sk,
            pk=pk,
        )
        game = Game(id=game_id, key=key, created_at=self.clock(), is_demo=is_demo)
        self.stores.keys.insert(key.id, key)
        self.stores.games.insert(game.id, game)
        log.info("game created", extra={"game_id": game.id, "is_demo": is_demo})
        return game

    def record_guess(self, game_id: str, user: str, guess: str) -> Guess:
        if not game_id:
            raise InvalidKey("game id must not be empty")
        g = Guess(
            id=self.new_id(),
            game_id=game_id,
            user=user,
            guess=guess,
            created_at=self.clock(),
        )
        self.stores.guesses.insert(g.id, g)
        log.info("guess recorded", extra={"game_id": game_id, "guess_id": g.id})
        return g

    def list_games(self) -> List[Game]:
        """All games in ascending id order."""
        return self.stores.games.values()

    def get_game(self, game_id: str) -> Game:
        game = self.stores.games.get(game_id)
        if game is None:
            raise NotFound(game_id, space="games")
        return game

    def list_guesses(self, game_id: Optional[str] = None) -> List[Guess]:
        """Guesses in ascending id order, optionally only those for `game_id`."""
        out = self.stores.guesses.values()
        if game_id is not None:
            out = [g for g in out if g.game_id == game_id]
        return out


__all__ = ["GameService", "utc_now", "new_uuid"]
