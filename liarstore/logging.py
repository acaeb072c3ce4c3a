"""
liarstore - logging
-------------------

Structured logging on top of the stdlib `logging` module:

- one JSON object per line, or a compact (optionally coloured) text line
- context fields held in a `contextvars.ContextVar` and merged into every
  record emitted while they are bound (trace_id, component, store, generation)
- `extra={...}` fields rendered next to the message; bytes become hex,
  paths and datetimes become strings
- an optional JSON log file next to the console handler

Usage
-----
    from liarstore import logging as slog

    slog.configure(json=False, level="INFO")  # once at process start
    log = slog.get_logger(__name__)

    with slog.trace_scope():
        slog.bind(component="cli")
        log.info("store opened", extra={"path": "/tmp/games.ldb"})
"""

from __future__ import annotations

import datetime as _dt
import io
import json
import logging
import os
import sys
import threading
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

_CTX: ContextVar[Dict[str, Any]] = ContextVar("liarstore_log_ctx", default={})

# Printed in this order by the text formatter.
CONTEXT_KEYS = ("trace_id", "component", "store", "generation")

# Attributes every LogRecord carries; anything else on a record came in via `extra=`.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}

_RESET = "\x1b[0m"
_DIM = "\x1b[90m"
_COLORS = {
    logging.DEBUG: _DIM,
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1m\x1b[35m",
}


# ----------------------------
# Context
# ----------------------------


def context() -> Dict[str, Any]:
    """Copy of the fields bound in the current context."""
    return dict(_CTX.get())


def bind(**fields: Any) -> None:
    merged = dict(_CTX.get())
    merged.update((k, _jsonable(v)) for k, v in fields.items())
    _CTX.set(merged)


def unbind(*keys: str) -> None:
    _CTX.set({k: v for k, v in _CTX.get().items() if k not in keys})


def clear_context() -> None:
    _CTX.set({})


@contextmanager
def trace_scope(trace_id: Optional[str] = None, **fields: Any) -> Iterator[str]:
    """
    Bind a trace id (fresh unless given) plus any extra fields for the body of
    the `with` block, then restore whatever was bound before.
    """
    token = _CTX.set(dict(_CTX.get()))
    tid = trace_id or short_uuid()
    try:
        bind(trace_id=tid, **fields)
        yield tid
    finally:
        _CTX.reset(token)


def short_uuid() -> str:
    return uuid.uuid4().hex[:12]


# ----------------------------
# Formatting
# ----------------------------


def _now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def _jsonable(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, _dt.datetime):
        return (v if v.tzinfo else v.replace(tzinfo=_dt.timezone.utc)).isoformat()
    if is_dataclass(v) and not isinstance(v, type):
        return asdict(v)
    return str(v)


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: _jsonable(v)
        for k, v in record.__dict__.items()
        if k not in _STANDARD_ATTRS and not k.startswith("_")
    }


def _traceback(record: logging.LogRecord) -> str:
    return "".join(traceback.format_exception(*record.exc_info)).rstrip()


def _is_tty(stream: Any) -> bool:
    try:
        return bool(stream.isatty()) and "NO_COLOR" not in os.environ
    except (AttributeError, ValueError):
        return False


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        out: Dict[str, Any] = {
            "ts": _now(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "pid": os.getpid(),
            "tid": threading.get_ident(),
        }
        out.update(context())
        for k, v in _record_extras(record).items():
            out.setdefault(k, v)
        if record.exc_info:
            out["err"] = _traceback(record)
        return json.dumps(out, default=str, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    """
    One line per record:

      2026-01-05T12:34:56.789+00:00 | INFO  | liarstore.db.pager | store=games.ldb generation=7 | recovered
    """

    def __init__(self, stream: Any):
        super().__init__()
        self.color = _is_tty(stream)

    def _paint(self, code: str, s: str) -> str:
        return f"{code}{s}{_RESET}" if self.color and s else s

    def format(self, record: logging.LogRecord) -> str:
        bound = context()
        fields = [f"{k}={bound[k]}" for k in CONTEXT_KEYS if bound.get(k) is not None]
        fields += [f"{k}={v}" for k, v in _record_extras(record).items() if k not in bound]

        parts = [
            self._paint(_DIM, _now()),
            self._paint(_COLORS.get(record.levelno, ""), f"{record.levelname:<5}"),
            self._paint("\x1b[36m", record.name),
        ]
        if fields:
            parts.append(" ".join(fields))
        parts.append(record.getMessage())
        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + _traceback(record)
        return line


# ----------------------------
# Setup
# ----------------------------


def _level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return _LEVELS.get(level.strip().upper(), logging.INFO)


def _want_json(flag: Optional[bool], stream: Any) -> bool:
    if flag is not None:
        return flag
    env = os.environ.get("LIARSTORE_LOG_FORMAT", "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    return not _is_tty(stream)


def configure(
    *,
    json: Optional[bool] = None,
    level: str | int = "INFO",
    stream: io.TextIOBase = sys.stderr,
    file_path: Optional[Path | str] = None,
) -> None:
    """
    Replace the root logger's handlers.

    json=None picks JSON from LIARSTORE_LOG_FORMAT, falling back to JSON when
    `stream` is not a terminal. `file_path`, when set, additionally receives
    JSON lines.
    """
    lvl = _level(level)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in list(root.handlers):
        root.removeHandler(h)

    handlers = [logging.StreamHandler(stream)]
    handlers[0].setFormatter(JSONFormatter() if _want_json(json, stream) else TextFormatter(stream))
    if file_path:
        p = Path(file_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(p, encoding="utf-8")
        fh.setFormatter(JSONFormatter())
        handlers.append(fh)
    for h in handlers:
        h.setLevel(lvl)
        root.addHandler(h)


def configure_from_config(cfg: Any) -> None:
    """Apply the `log` section of a `liarstore.config.Config`."""
    fmt = (cfg.log.format or "").strip().lower()
    configure(
        json={"json": True, "text": False}.get(fmt),
        level=cfg.log.level,
        file_path=cfg.paths.logs_dir / "liarstore.log" if cfg.log.to_file else None,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "liarstore")


__all__ = [
    "CONTEXT_KEYS",
    "context",
    "bind",
    "unbind",
    "clear_context",
    "trace_scope",
    "short_uuid",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "configure_from_config",
    "get_logger",
]
