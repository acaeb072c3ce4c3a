from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from liarstore.db import DurableKV, MemoryKV


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "games.ldb"


@pytest.fixture
def kv(store_path: Path) -> Iterator[DurableKV]:
    """Durable store with the default page size."""
    s = DurableKV(store_path)
    yield s
    s.close()


@pytest.fixture
def small_kv(store_path: Path) -> Iterator[DurableKV]:
    """Smallest page size and no fsync, so a few hundred keys build a deep tree."""
    s = DurableKV(store_path, page_size=512, sync=False)
    yield s
    s.close()


@pytest.fixture(params=["durable", "memory"])
def any_kv(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "durable":
        s = DurableKV(tmp_path / "any.ldb", page_size=512, sync=False)
    else:
        s = MemoryKV(page_size=512)
    yield s
    s.close()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from the user's data dir and config."""
    for name in (
        "LIARSTORE_DATA_DIR",
        "LIARSTORE_LOGS_DIR",
        "LIARSTORE_PAGE_SIZE",
        "LIARSTORE_SYNC",
        "LIARSTORE_CACHE_PAGES",
        "LIARSTORE_LOG_LEVEL",
        "LIARSTORE_LOG_FORMAT",
        "LIARSTORE_LOG_FILE",
        "LIARSTORE_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
