"""Shared CLI state and output helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import typer

from ..config import Config, load
from ..errors import StoreError
from ..logging import configure_from_config


class GlobalContext:
    def __init__(self) -> None:
        self.data_dir: Optional[Path] = None
        self.config_path: Optional[Path] = None
        self.log_level: Optional[str] = None
        self.json_output: Optional[bool] = None
        self._cfg: Optional[Config] = None

    def reset(self) -> None:
        self.data_dir = self.config_path = None
        self.log_level = None
        self.json_output = None
        self._cfg = None

    @property
    def cfg(self) -> Config:
        """Configuration resolved from flags > env > file > defaults (loaded once per run)."""
        if self._cfg is None:
            overrides: dict = {}
            if self.data_dir:
                overrides["paths"] = {"data_dir": str(self.data_dir)}
            log: dict = {}
            if self.log_level:
                log["level"] = self.log_level
            if self.json_output is not None:
                log["format"] = "json" if self.json_output else "text"
            if log:
                overrides["log"] = log
            self._cfg = load(self.config_path, **overrides)
            configure_from_config(self._cfg)
        return self._cfg


ctx = GlobalContext()


def emit(obj: Any) -> None:
    """Print a JSON document: compact with --json, indented otherwise."""
    if ctx.json_output:
        typer.echo(json.dumps(obj, sort_keys=True, separators=(",", ":")))
    else:
        typer.echo(json.dumps(obj, indent=2, sort_keys=True))


def fail(err: StoreError) -> typer.Exit:
    """Report `err` on stderr and return the exit to raise."""
    if ctx.json_output:
        typer.echo(json.dumps({"error": err.to_dict()}, sort_keys=True), err=True)
    else:
        typer.echo(f"Error: {err}", err=True)
    return typer.Exit(1)


__all__ = ["GlobalContext", "ctx", "emit", "fail"]
