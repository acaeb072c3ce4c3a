"""
liarstore - operator CLI for the ordered store and the game records.

Global options:
  --data-dir PATH         Directory holding games.ldb / guesses.ldb / keys.ldb
  --config PATH           TOML or JSON config file
  --log-level TEXT        DEBUG, INFO, WARNING, ERROR
  --json / --text         Output (and log) format

Examples:
  liarstore store info ~/.liarstore/games.ldb
  liarstore store verify ~/.liarstore/games.ldb
  liarstore store put /tmp/scratch.ldb g1 hello
  liarstore game new --demo
  liarstore game list
  liarstore game guess <game-id> alice "two truths"
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from . import game, store
from .common import ctx

app = typer.Typer(
    name="liarstore",
    help="Durable ordered store and liar-game records",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main_callback(
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir",
        help="Directory holding the record stores",
        envvar="LIARSTORE_DATA_DIR",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to config file (TOML or JSON)",
        envvar="LIARSTORE_CONFIG",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Minimum log level",
    ),
    json_output: Optional[bool] = typer.Option(
        None,
        "--json/--text",
        help="Output JSON instead of human-readable text",
    ),
) -> None:
    """
    liarstore CLI: inspect and verify store files, manage game records.

    Configuration is resolved in this order (highest to lowest priority):
      1. Command-line flags (--data-dir, --log-level, --json/--text)
      2. Environment variables (LIARSTORE_DATA_DIR, LIARSTORE_LOG_LEVEL, ...)
      3. Config file (--config or LIARSTORE_CONFIG)
      4. Built-in defaults
    """
    ctx.reset()
    ctx.data_dir = data_dir
    ctx.config_path = config
    ctx.log_level = log_level
    ctx.json_output = json_output


app.add_typer(store.app, name="store")
app.add_typer(game.app, name="game")


def main() -> None:
    """Entry point for the liarstore CLI."""
    app()


if __name__ == "__main__":
    main()
