from __future__ import annotations

"""
liarstore.records.models
========================

Records persisted by the game service.

Canonical object shape (what `to_obj` produces and the stores hold as CBOR):

- PrivateKey : {id, gameId, createdAt, sk, pk}
- Guess      : {id, gameId, user, guess, createdAt}
- Game       : {id, isDemo, key, guesses, won, createdAt}

`createdAt` is a timezone-aware UTC datetime (CBOR tag 0). `sk`/`pk` are raw
bytes. `to_json` renders the same shape with ISO-8601 timestamps and hex keys
for the CLI.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple


def _utc(dt: Any) -> datetime:
    if not isinstance(dt, datetime):
        raise TypeError(f"createdAt must be a datetime, got {type(dt).__name__}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso_utc(dt: datetime) -> str:
    """ISO-8601 with millisecond precision and a trailing Z."""
    return _utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class PrivateKeyRecord:
    id: str
    game_id: str
    created_at: datetime
    sk: bytes
    pk: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", _utc(self.created_at))
        if not isinstance(self.sk, (bytes, bytearray)) or not isinstance(self.pk, (bytes, bytearray)):
            raise TypeError("PrivateKeyRecord.sk/pk must be bytes")
        object.__setattr__(self, "sk", bytes(self.sk))
        object.__setattr__(self, "pk", bytes(self.pk))

    def to_obj(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "createdAt": self.created_at,
            "sk": self.sk,
            "pk": self.pk,
        }

    @staticmethod
    def from_obj(o: Mapping[str, Any]) -> "PrivateKeyRecord":
        return PrivateKeyRecord(
            id=str(o["id"]),
            game_id=str(o["gameId"]),
            created_at=o["createdAt"],
            sk=bytes(o["sk"]),
            pk=bytes(o["pk"]),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "createdAt": iso_utc(self.created_at),
            "sk": self.sk.hex(),
            "pk": self.pk.hex(),
        }


@dataclass(frozen=True)
class Guess:
    id: str
    game_id: str
    user: str
    guess: str
    created_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", _utc(self.created_at))

    def to_obj(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "user": self.user,
            "guess": self.guess,
            "createdAt": self.created_at,
        }

    @staticmethod
    def from_obj(o: Mapping[str, Any]) -> "Guess":
        return Guess(
            id=str(o["id"]),
            game_id=str(o["gameId"]),
            user=str(o["user"]),
            guess=str(o["guess"]),
            created_at=o["createdAt"],
        )

    def to_json(self) -> Dict[str, Any]:
        out = self.to_obj()
        out["createdAt"] = iso_utc(self.created_at)
        return out


@dataclass(frozen=True)
class Game:
    id: str
    key: PrivateKeyRecord
    created_at: datetime
    is_demo: Optional[bool] = None
    guesses: Tuple[Guess, ...] = field(default_factory=tuple)
    won: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", _utc(self.created_at))
        object.__setattr__(self, "guesses", tuple(self.guesses))
        if self.is_demo is not None and not isinstance(self.is_demo, bool):
            raise TypeError("Game.is_demo must be a bool or None")

    def to_obj(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "isDemo": self.is_demo,
            "key": self.key.to_obj(),
            "guesses": [g.to_obj() for g in self.guesses],
            "won": bool(self.won),
            "createdAt": self.created_at,
        }

    @staticmethod
    def from_obj(o: Mapping[str, Any]) -> "Game":
        return Game(
            id=str(o["id"]),
            is_demo=o.get("isDemo"),
            key=PrivateKeyRecord.from_obj(o["key"]),
            guesses=tuple(Guess.from_obj(g) for g in o.get("guesses", [])),
            won=bool(o.get("won", False)),
            created_at=o["createdAt"],
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "isDemo": self.is_demo,
            "key": self.key.to_json(),
            "guesses": [g.to_json() for g in self.guesses],
            "won": bool(self.won),
            "createdAt": iso_utc(self.created_at),
        }


__all__ = ["PrivateKeyRecord", "Guess", "Game", "iso_utc"]
