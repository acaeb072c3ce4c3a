from __future__ import annotations

import io
import json
import logging

from liarstore import logging as slog


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    rec = logging.LogRecord("liarstore.db.pager", logging.INFO, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_json_formatter_merges_context_and_extras() -> None:
    slog.clear_context()
    with slog.trace_scope("abc123"):
        slog.bind(store="games.ldb")
        line = slog.JSONFormatter().format(_record(generation=7, raw=b"\x01"))
    payload = json.loads(line)
    assert payload["msg"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["trace_id"] == "abc123"
    assert payload["store"] == "games.ldb"
    assert payload["generation"] == 7
    assert payload["raw"] == "01"
    # trace_scope restores the previous context
    assert slog.context() == {}


def test_text_formatter_plain_stream() -> None:
    slog.clear_context()
    slog.bind(component="pager")
    try:
        line = slog.TextFormatter(io.StringIO()).format(_record("recovered", entries=3))
    finally:
        slog.unbind("component")
    assert "| INFO  | liarstore.db.pager" in line
    assert "component=pager" in line
    assert "entries=3" in line
    assert line.endswith("| recovered")
    assert "\x1b[" not in line


def test_configure_writes_json_to_stream() -> None:
    buf = io.StringIO()
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        slog.configure(json=True, level="DEBUG", stream=buf)
        slog.get_logger("liarstore.test").debug("committed", extra={"generation": 2})
    finally:
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
    payload = json.loads(buf.getvalue().strip().splitlines()[-1])
    assert payload["msg"] == "committed"
    assert payload["generation"] == 2


def test_get_logger_default_name() -> None:
    assert slog.get_logger().name == "liarstore"
