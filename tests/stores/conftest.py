"""Fixtures shared by the store backend tests."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from flow_manager.store import Store
from flow_manager.stores import JsonStore, SqliteStore


@pytest.fixture(params=["json", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[Store]:
    """Each backend, backed by a fresh file."""
    if request.param == "json":
        yield JsonStore(tmp_path / "flow.json")
    else:
        backend = SqliteStore(tmp_path / "flow.db")
        yield backend
        backend.close()
