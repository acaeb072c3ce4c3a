"""
liarstore.cli.store - inspect and edit a single store file.

Implements:
  - liarstore store info PATH          Superblock / page / entry stats
  - liarstore store verify PATH        Full integrity walk (exit 1 on failure)
  - liarstore store dump PATH          Ordered listing as JSON lines
  - liarstore store get PATH KEY       Print the value stored under KEY
  - liarstore store put PATH KEY VAL   Insert or overwrite KEY
  - liarstore store rm PATH KEY        Remove KEY

Keys and values given on the command line are UTF-8 text.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from ..db import DurableKV, open_kv
from ..errors import ConfigError, NotFound, StoreError
from .common import ctx, emit, fail

app = typer.Typer(help="Store file inspection (info, verify, dump, get, put, rm)")


def _open(path: Path, *, create: bool = False) -> DurableKV:
    kv = open_kv(path, config=ctx.cfg, create=create)
    if not isinstance(kv, DurableKV):
        kv.close()
        raise ConfigError("store commands need a file-backed store", uri=str(path))
    return kv


def _key(key: str) -> bytes:
    return key.encode("utf-8")


def _render(raw: bytes, field: str) -> Dict[str, Any]:
    """UTF-8 text when the bytes decode cleanly, hex otherwise."""
    try:
        return {field: raw.decode("utf-8")}
    except UnicodeDecodeError:
        return {f"{field}_hex": raw.hex()}


@app.command()
def info(path: Path = typer.Argument(..., help="Store file")) -> None:
    """Show generation, root, page and entry counts."""
    try:
        with _open(path) as kv:
            stats = kv.stats()
    except StoreError as e:
        raise fail(e)
    if ctx.json_output:
        emit(stats)
        return
    for k in ("path", "page_size", "generation", "root", "entries", "pages", "free_pages", "max_key_size"):
        typer.echo(f"{k:<13} {stats[k]}")


@app.command()
def verify(path: Path = typer.Argument(..., help="Store file")) -> None:
    """Walk every page; exit code 1 if anything is inconsistent."""
    try:
        with _open(path) as kv:
            report = kv.verify()
    except StoreError as e:
        raise fail(e)
    if ctx.json_output:
        emit(
            {
                "ok": report.ok,
                "entries": report.entries,
                "pages": report.pages,
                "depth": report.depth,
                "errors": report.errors,
            }
        )
    elif report.ok:
        typer.echo(f"OK: {report.entries} entries, {report.pages} pages, depth {report.depth}")
    else:
        typer.echo(f"FAILED: {len(report.errors)} problem(s)")
        for err in report.errors:
            typer.echo(f"  - {err}")
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def dump(
    path: Path = typer.Argument(..., help="Store file"),
    start: int = typer.Option(0, "--start", min=0, help="Skip this many entries"),
    limit: Optional[int] = typer.Option(None, "--limit", min=0, help="Emit at most this many entries"),
) -> None:
    """Print entries in ascending key order, one JSON object per line."""
    try:
        with _open(path) as kv:
            rows = kv.items(start, limit)
    except StoreError as e:
        raise fail(e)
    for k, v in rows:
        line = _render(k, "key")
        line.update(_render(v, "value"))
        typer.echo(json.dumps(line, sort_keys=True))


@app.command()
def get(
    path: Path = typer.Argument(..., help="Store file"),
    key: str = typer.Argument(..., help="Key (UTF-8)"),
) -> None:
    """Print the value under KEY; exit code 1 if absent."""
    try:
        with _open(path) as kv:
            value = kv.get(_key(key))
        if value is None:
            raise NotFound(key, space=str(path))
    except StoreError as e:
        raise fail(e)
    if ctx.json_output:
        emit(_render(value, "value"))
    else:
        typer.echo(value.decode("utf-8", errors="replace"))


@app.command()
def put(
    path: Path = typer.Argument(..., help="Store file (created if missing)"),
    key: str = typer.Argument(..., help="Key (UTF-8)"),
    value: str = typer.Argument(..., help="Value (UTF-8)"),
) -> None:
    """Insert or overwrite KEY."""
    try:
        with _open(path, create=True) as kv:
            old = kv.put(_key(key), value.encode("utf-8"))
    except StoreError as e:
        raise fail(e)
    if ctx.json_output:
        emit({"key": key, "replaced": old is not None})
    else:
        typer.echo(f"{'replaced' if old is not None else 'inserted'} {key}")


@app.command()
def rm(
    path: Path = typer.Argument(..., help="Store file"),
    key: str = typer.Argument(..., help="Key (UTF-8)"),
) -> None:
    """Remove KEY; exit code 1 if it was absent."""
    try:
        with _open(path) as kv:
            old = kv.delete(_key(key))
        if old is None:
            raise NotFound(key, space=str(path))
    except StoreError as e:
        raise fail(e)
    if ctx.json_output:
        emit({"key": key, "removed": True})
    else:
        typer.echo(f"removed {key}")
