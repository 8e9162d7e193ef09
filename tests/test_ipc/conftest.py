import pytest

from courier.groups.types import RegisteredGroup
from courier.ipc.watcher import IpcDeps
from courier.scheduling.task_service import TaskManager


@pytest.fixture
def task_manager(db):
    return TaskManager(db.task_repo, timezone="UTC")


@pytest.fixture
def groups():
    return {
        "local:main": RegisteredGroup(name="Main", folder="main", trigger="@Courier", added_at="2026-01-01T00:00:00.000Z"),
        "local:dev": RegisteredGroup(name="Dev", folder="dev", trigger="@Courier", added_at="2026-01-01T00:00:00.000Z"),
        "local:ops": RegisteredGroup(name="Ops", folder="ops", trigger="@Courier", added_at="2026-01-01T00:00:00.000Z"),
    }


@pytest.fixture
def deps(groups, task_manager):
    return IpcDeps(registered_groups=lambda: groups, task_manager=task_manager)
