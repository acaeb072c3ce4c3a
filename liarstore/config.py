"""
liarstore configuration loader.

Layers, highest first:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (LIARSTORE_*)
    3) Config file (TOML or JSON)
    4) Built-in defaults (lowest)

The data dir defaults to the platform data root (XDG_DATA_HOME, APPDATA or
~/Library/Application Support) plus "liarstore".

Sections:
  - paths: data & logs directories
  - store: page size, fsync policy, node cache size
  - log:   level / format / file logging
"""

from __future__ import annotations

import json
import os
import platform
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

try:  # py311+
    import tomllib as _toml  # type: ignore[attr-defined]
except Exception:  # py310 or missing
    _toml = None  # type: ignore[assignment]


# ------------------------------
# Defaults & helpers
# ------------------------------

DEFAULT_PAGE_SIZE = 4096
MIN_PAGE_SIZE = 512
MAX_PAGE_SIZE = 65536
DEFAULT_CACHE_PAGES = 1024

STORE_SUFFIX = ".ldb"


def _expand(p: str | Path) -> Path:
    return Path(p).expanduser().resolve()


def _os_default_data_root() -> Path:
    system = platform.system()
    if system == "Darwin":
        return _expand("~/Library/Application Support")
    if system == "Windows":
        appdata = os.environ.get("APPDATA") or os.environ.get("LOCALAPPDATA")
        if appdata:
            return _expand(appdata)
        return _expand("~\\AppData\\Roaming")
    xdg = os.environ.get("XDG_DATA_HOME")
    return _expand(xdg) if xdg else _expand("~/.local/share")


def _default_data_dir() -> Path:
    return _os_default_data_root() / "liarstore"


_TRUE = {"1", "true", "t", "yes", "y", "on"}
_FALSE = {"0", "false", "f", "no", "n", "off", ""}


def _parse_bool(v: str) -> bool:
    return v.strip().lower() in _TRUE


def _as_bool(v: Any, name: str) -> bool:
    """Strict bool for file and override values: true/false, 0/1 or the usual words."""
    if isinstance(v, bool):
        return v
    if isinstance(v, int) and v in (0, 1):
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
    raise ConfigError(f"{name} must be a boolean, got {v!r}", field=name)


def _env_int(name: str, default: int) -> int:
    v = os.environ.get(name)
    if v is None or v == "":
        return default
    try:
        return int(v, 0)
    except ValueError as e:
        raise ConfigError(f"{name} must be int, got {v!r}", env=name) from e


# ------------------------------
# Typed configuration model
# ------------------------------

@dataclass
class PathsConfig:
    data_dir: Path
    logs_dir: Path

    @staticmethod
    def defaults() -> "PathsConfig":
        root = _default_data_dir()
        return PathsConfig(data_dir=root, logs_dir=root / "logs")


@dataclass
class StoreConfig:
    page_size: int = DEFAULT_PAGE_SIZE
    sync: bool = True  # fsync pages and superblock on every commit
    cache_pages: int = DEFAULT_CACHE_PAGES

    def validate(self) -> None:
        ps = self.page_size
        if ps < MIN_PAGE_SIZE or ps > MAX_PAGE_SIZE or ps & (ps - 1):
            raise ConfigError(
                "page_size must be a power of two in [512, 65536]", page_size=ps
            )
        if self.cache_pages < 0:
            raise ConfigError("cache_pages must be >= 0", cache_pages=self.cache_pages)


@dataclass
class LogConfig:
    level: str = "INFO"
    format: str = ""  # "json" | "text" | "" (auto)
    to_file: bool = False

    def validate(self) -> None:
        if self.level.upper() not in {"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"}:
            raise ConfigError("unknown log level", level=self.level)
        if self.format not in {"", "json", "text"}:
            raise ConfigError("log format must be json or text", format=self.format)


@dataclass
class Config:
    paths: PathsConfig
    store: StoreConfig
    log: LogConfig

    def ensure_dirs(self) -> None:
        self.paths.data_dir.mkdir(parents=True, exist_ok=True)
        if self.log.to_file:
            self.paths.logs_dir.mkdir(parents=True, exist_ok=True)

    def store_path(self, name: str) -> Path:
        """Path of the named store file under the data dir."""
        return self.paths.data_dir / f"{name}{STORE_SUFFIX}"

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["paths"] = {k: str(v) for k, v in d["paths"].items()}
        return d


# ------------------------------
# File loader (TOML / JSON)
# ------------------------------

def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("config file not found", path=str(path))
    suffix = path.suffix.lower()
    if suffix in {".toml", ".tml"}:
        if not _toml:
            raise ConfigError("tomllib is unavailable (Python < 3.11); use a JSON config")
        parse: Any = _toml.load
    elif suffix == ".json":
        parse = json.load
    else:
        raise ConfigError(f"unsupported config format: {suffix}", path=str(path))
    try:
        with path.open("rb") as f:
            data = parse(f)
    except ValueError as e:  # JSONDecodeError and TOMLDecodeError
        raise ConfigError(f"cannot parse config file: {e}", path=str(path)) from e
    if not isinstance(data, dict):
        raise ConfigError("config file must hold a table of sections", path=str(path))
    return data


def _merge_dict(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dict merge: values in b override a."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


def _env_layer() -> Dict[str, Any]:
    env: Dict[str, Any] = {"paths": {}, "store": {}, "log": {}}
    if "LIARSTORE_DATA_DIR" in os.environ:
        env["paths"]["data_dir"] = os.environ["LIARSTORE_DATA_DIR"]
    if "LIARSTORE_LOGS_DIR" in os.environ:
        env["paths"]["logs_dir"] = os.environ["LIARSTORE_LOGS_DIR"]
    if "LIARSTORE_PAGE_SIZE" in os.environ:
        env["store"]["page_size"] = _env_int("LIARSTORE_PAGE_SIZE", DEFAULT_PAGE_SIZE)
    if "LIARSTORE_SYNC" in os.environ:
        env["store"]["sync"] = _parse_bool(os.environ["LIARSTORE_SYNC"])
    if "LIARSTORE_CACHE_PAGES" in os.environ:
        env["store"]["cache_pages"] = _env_int("LIARSTORE_CACHE_PAGES", DEFAULT_CACHE_PAGES)
    if "LIARSTORE_LOG_LEVEL" in os.environ:
        env["log"]["level"] = os.environ["LIARSTORE_LOG_LEVEL"].strip()
    if "LIARSTORE_LOG_FORMAT" in os.environ:
        env["log"]["format"] = os.environ["LIARSTORE_LOG_FORMAT"].strip().lower()
    if "LIARSTORE_LOG_FILE" in os.environ:
        env["log"]["to_file"] = _parse_bool(os.environ["LIARSTORE_LOG_FILE"])
    return env


# ------------------------------
# Main loader
# ------------------------------

def load(config_file: Optional[str | Path] = None, **overrides: Any) -> Config:
    """
    Load the configuration.

    Precedence: overrides > env > file > defaults.

    Parameters
    ----------
    config_file : str | Path | None
        Optional path to a TOML or JSON file with keys:
          paths: { data_dir, logs_dir }
          store: { page_size, sync, cache_pages }
          log:   { level, format, to_file }

    overrides : Any
        Keyword overrides, e.g. load(store={"sync": False})
    """
    paths = PathsConfig.defaults()
    base: Dict[str, Any] = {
        "paths": {"data_dir": str(paths.data_dir), "logs_dir": None},
        "store": asdict(StoreConfig()),
        "log": asdict(LogConfig()),
    }

    if config_file:
        base = _merge_dict(base, _load_file(_expand(config_file)))
    base = _merge_dict(base, _env_layer())
    if overrides:
        base = _merge_dict(base, overrides)

    try:
        data_dir = _expand(base["paths"]["data_dir"])
        logs_dir = base["paths"].get("logs_dir")
        cfg = Config(
            paths=PathsConfig(
                data_dir=data_dir,
                logs_dir=_expand(logs_dir) if logs_dir else data_dir / "logs",
            ),
            store=StoreConfig(
                page_size=int(base["store"]["page_size"]),
                sync=_as_bool(base["store"]["sync"], "store.sync"),
                cache_pages=int(base["store"]["cache_pages"]),
            ),
            log=LogConfig(
                level=str(base["log"]["level"]),
                format=str(base["log"]["format"] or ""),
                to_file=_as_bool(base["log"]["to_file"], "log.to_file"),
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"malformed configuration: {e}") from e

    cfg.store.validate()
    cfg.log.validate()
    return cfg


# ------------------------------
# CLI helper
# ------------------------------

def main(argv: List[str] | None = None) -> int:
    """
    python -m liarstore.config                    # load defaults/env; print JSON
    python -m liarstore.config path/to/cfg.toml   # load file; print JSON
    """
    argv = sys.argv[1:] if argv is None else list(argv)
    path = argv[0] if argv else None
    try:
        cfg = load(path)
        print(json.dumps(cfg.to_dict(), indent=2, sort_keys=True))
        return 0
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
