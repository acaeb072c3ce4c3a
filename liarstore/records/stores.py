from __future__ import annotations

"""
The three record stores behind the game service, opened and closed together.

    <data_dir>/games.ldb    id -> Game
    <data_dir>/guesses.ldb  id -> Guess
    <data_dir>/keys.ldb     id -> PrivateKeyRecord

Use as a context manager around service lifetime:

    with RecordStores.open(cfg) as stores:
        svc = GameService(stores)
"""

from typing import Dict, List, Optional

from ..config import Config
from ..db import OrderedStore, RecordCodec, open_store
from ..logging import get_logger
from .models import Game, Guess, PrivateKeyRecord

log = get_logger(__name__)

GAMES = "games"
GUESSES = "guesses"
KEYS = "keys"


class RecordStores:
    def __init__(
        self,
        games: OrderedStore[str, Game],
        guesses: OrderedStore[str, Guess],
        keys: OrderedStore[str, PrivateKeyRecord],
    ) -> None:
        self.games = games
        self.guesses = guesses
        self.keys = keys
        self._closed = False

    @classmethod
    def open(cls, cfg: Config) -> "RecordStores":
        """Open (creating if needed) the stores under `cfg.paths.data_dir`."""
        cfg.ensure_dirs()
        opened: List[OrderedStore] = []
        try:
            for name, record in ((GAMES, Game), (GUESSES, Guess), (KEYS, PrivateKeyRecord)):
                opened.append(
                    open_store(cfg.store_path(name), value_codec=RecordCodec(record), config=cfg)
                )
        except BaseException:
            for s in opened:
                s.close()
            raise
        log.info("record stores open", extra={"data_dir": str(cfg.paths.data_dir)})
        return cls(*opened)

    @classmethod
    def in_memory(cls) -> "RecordStores":
        return cls(
            open_store("memory://", value_codec=RecordCodec(Game)),
            open_store("memory://", value_codec=RecordCodec(Guess)),
            open_store("memory://", value_codec=RecordCodec(PrivateKeyRecord)),
        )

    def all(self) -> Dict[str, OrderedStore]:
        return {GAMES: self.games, GUESSES: self.guesses, KEYS: self.keys}

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        first: Optional[BaseException] = None
        for store in self.all().values():
            try:
                store.close()
            except Exception as e:  # close the rest, then re-raise
                log.error("failed to close store", extra={"path": store.path, "error": str(e)})
                if first is None:
                    first = e
        if first is not None:
            raise first

    def __enter__(self) -> "RecordStores":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["RecordStores", "GAMES", "GUESSES", "KEYS"]
