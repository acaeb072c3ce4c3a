"""
liarstore.cli.game - game records under the configured data dir.

Implements:
  - liarstore game new [--demo/--no-demo]     Create a game (fresh secp256k1 key)
  - liarstore game list                       All games, ascending id
  - liarstore game show ID                    One game (exit 1 if unknown)
  - liarstore game guess GAME_ID USER GUESS   Record a guess
  - liarstore game guesses [GAME_ID]          Recorded guesses
"""

from __future__ import annotations

from typing import Optional

import typer

from ..errors import StoreError
from ..logging import trace_scope
from ..records import GameService, RecordStores
from .common import ctx, emit, fail

app = typer.Typer(help="Game records (new, list, show, guess, guesses)")


def _service(stores: RecordStores) -> GameService:
    return GameService(stores)


@app.command()
def new(
    demo: Optional[bool] = typer.Option(
        None,
        "--demo/--no-demo",
        help="Mark the game as a demo (omitted: unset)",
    ),
) -> None:
    """Create a game with a fresh keypair."""
    try:
        with trace_scope(component="cli"), RecordStores.open(ctx.cfg) as stores:
            game = _service(stores).create_game(is_demo=demo)
    except StoreError as e:
        raise fail(e)
    emit(game.to_json())


@app.command("list")
def list_games() -> None:
    """List every game in ascending id order."""
    try:
        with trace_scope(component="cli"), RecordStores.open(ctx.cfg) as stores:
            games = _service(stores).list_games()
    except StoreError as e:
        raise fail(e)
    emit([g.to_json() for g in games])


@app.command()
def show(game_id: str = typer.Argument(..., help="Game id")) -> None:
    """Show one game."""
    try:
        with trace_scope(component="cli"), RecordStores.open(ctx.cfg) as stores:
            game = _service(stores).get_game(game_id)
    except StoreError as e:
        raise fail(e)
    emit(game.to_json())


@app.command()
def guess(
    game_id: str = typer.Argument(..., help="Game id the guess is for"),
    user: str = typer.Argument(..., help="Who is guessing"),
    text: str = typer.Argument(..., metavar="GUESS", help="The guess"),
) -> None:
    """Record a guess."""
    try:
        with trace_scope(component="cli"), RecordStores.open(ctx.cfg) as stores:
            g = _service(stores).record_guess(game_id, user, text)
    except StoreError as e:
        raise fail(e)
    emit(g.to_json())


@app.command()
def guesses(
    game_id: Optional[str] = typer.Argument(None, help="Only guesses for this game"),
) -> None:
    """List recorded guesses in ascending id order."""
    try:
        with trace_scope(component="cli"), RecordStores.open(ctx.cfg) as stores:
            rows = _service(stores).list_guesses(game_id)
    except StoreError as e:
        raise fail(e)
    emit([g.to_json() for g in rows])
