from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from liarstore.config import load as load_config
from liarstore.db import RecordCodec
from liarstore.errors import InvalidKey, NotFound
from liarstore.records import (
    Game,
    GameService,
    Guess,
    PrivateKeyRecord,
    RecordStores,
    generate_secp256k1_keypair,
    utc_now,
)
from liarstore.records.keys import PK_LEN, SK_LEN, public_key_of

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.t = T0

    def __call__(self) -> datetime:
        self.t += timedelta(seconds=1)
        return self.t


def fake_ids(prefix: str = "id"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter):04d}"


def fake_keypair():
    return b"\x11" * 32, b"\x02" + b"\x22" * 32


@pytest.fixture
def service():
    stores = RecordStores.in_memory()
    yield GameService(stores, keypair=fake_keypair, clock=FakeClock(), new_id=fake_ids())
    stores.close()


def test_create_game_persists_game_and_key(service: GameService) -> None:
    game = service.create_game(is_demo=True)
    assert game.id == "id-0001"
    assert game.key.id == "id-0002"
    assert game.key.game_id == game.id
    assert game.is_demo is True
    assert game.won is False
    assert game.guesses == ()
    assert game.key.sk == b"\x11" * 32

    assert service.stores.games.get(game.id) == game
    assert service.stores.keys.get(game.key.id) == game.key
    assert service.get_game(game.id) == game


def test_is_demo_defaults_to_unset(service: GameService) -> None:
    game = service.create_game()
    assert game.is_demo is None
    assert service.get_game(game.id).to_json()["isDemo"] is None


def test_list_games_in_id_order(service: GameService) -> None:
    created = [service.create_game() for _ in range(3)]
    listed = service.list_games()
    assert [g.id for g in listed] == sorted(g.id for g in created)
    assert listed == sorted(created, key=lambda g: g.id)


def test_guess_is_stored_but_not_linked(service: GameService) -> None:
    game = service.create_game()
    g = service.record_guess(game.id, "alice", "the second one")
    assert g.game_id == game.id and g.user == "alice"
    assert service.stores.guesses.get(g.id) == g
    # The game record is not rewritten by a guess.
    assert service.get_game(game.id).guesses == ()
    assert service.list_guesses(game.id) == [g]
    assert service.list_guesses("other") == []
    with pytest.raises(InvalidKey):
        service.record_guess("", "bob", "x")


def test_get_unknown_game(service: GameService) -> None:
    with pytest.raises(NotFound) as ei:
        service.get_game("missing")
    assert ei.value.data == {"key": "missing", "space": "games"}


def test_record_codec_preserves_records() -> None:
    key = PrivateKeyRecord(id="k", game_id="g", created_at=T0, sk=b"\x01" * 32, pk=b"\x03" * 33)
    guess = Guess(id="q", game_id="g", user="u", guess="lie", created_at=T0)
    game = Game(id="g", key=key, created_at=T0, is_demo=False, guesses=(guess,), won=True)
    codec = RecordCodec(Game)
    raw = codec.encode(game)
    assert codec.decode(raw) == game
    assert codec.encode(codec.decode(raw)) == raw


def test_to_json_shape() -> None:
    key = PrivateKeyRecord(id="k", game_id="g", created_at=T0, sk=b"\x01" * 2, pk=b"\xab")
    doc = Game(id="g", key=key, created_at=T0).to_json()
    assert doc == {
        "id": "g",
        "isDemo": None,
        "key": {
            "id": "k",
            "gameId": "g",
            "createdAt": "2024-03-01T12:00:00.000Z",
            "sk": "0101",
            "pk": "ab",
        },
        "guesses": [],
        "won": False,
        "createdAt": "2024-03-01T12:00:00.000Z",
    }


def test_naive_datetimes_are_taken_as_utc() -> None:
    g = Guess(id="q", game_id="g", user="u", guess="x", created_at=datetime(2024, 1, 1))
    assert g.created_at.tzinfo == timezone.utc
    with pytest.raises(TypeError):
        Guess(id="q", game_id="g", user="u", guess="x", created_at="yesterday")  # type: ignore[arg-type]


def test_secp256k1_keypair() -> None:
    sk, pk = generate_secp256k1_keypair()
    assert len(sk) == SK_LEN
    assert len(pk) == PK_LEN and pk[0] in (2, 3)
    assert public_key_of(sk) == pk
    assert generate_secp256k1_keypair()[0] != sk


def test_utc_now_is_aware_millis() -> None:
    now = utc_now()
    assert now.tzinfo is not None
    assert now.microsecond % 1000 == 0


def test_file_stores_persist(tmp_path: Path) -> None:
    cfg = load_config(paths={"data_dir": str(tmp_path / "data")}, store={"page_size": 1024})
    with RecordStores.open(cfg) as stores:
        svc = GameService(stores)
        game = svc.create_game(is_demo=False)
        svc.record_guess(game.id, "carol", "truth")
    assert sorted(p.name for p in (tmp_path / "data").iterdir()) == [
        "games.ldb",
        "guesses.ldb",
        "keys.ldb",
    ]
    with RecordStores.open(cfg) as stores:
        svc = GameService(stores)
        assert svc.list_games() == [game]
        assert len(stores.guesses) == 1
        assert stores.keys.get(game.key.id) == game.key
        assert public_key_of(game.key.sk) == game.key.pk
