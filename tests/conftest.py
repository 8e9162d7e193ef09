import pytest

import courier.groups.paths as group_paths
from courier.infrastructure.database import AppDatabase


@pytest.fixture
def db():
    """Create an in-memory database for testing."""
    app_db = AppDatabase.in_memory()
    yield app_db
    app_db.close()


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep group workspaces and IPC files inside the test's tmp_path."""
    monkeypatch.setattr(group_paths, "GROUPS_DIR", tmp_path / "groups")
    monkeypatch.setattr(group_paths, "DATA_DIR", tmp_path / "data")
    return tmp_path
