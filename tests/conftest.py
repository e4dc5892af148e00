from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from database import Database, JsonSnapshotFile
from main import app, get_database


@pytest.fixture()
def snapshot_path(tmp_path: Path) -> Path:
    return tmp_path / "database.json"


@pytest.fixture()
def database(snapshot_path: Path) -> Database:
    """Empty Database saving to a per-test snapshot file."""
    return Database(snapshots=JsonSnapshotFile(snapshot_path))


@pytest.fixture()
def client(database: Database):
    # Not entered as a context manager, so the lifespan handler (which loads
    # the configured snapshot) does not run; the override supplies the store.
    app.dependency_overrides[get_database] = lambda: database
    yield TestClient(app)
    app.dependency_overrides.clear()
