"""IPC watcher — polls each group's IPC tasks directory for commands from containers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

from courier.groups.paths import GroupPaths
from courier.groups.types import RegisteredGroup
from courier.infrastructure.config import IPC_POLL_INTERVAL, MAIN_GROUP_FOLDER
from courier.infrastructure.logger import logger
from courier.infrastructure.poll_loop import PollLoop
from courier.ipc.dispatcher import IpcCommandDispatcher
from courier.ipc.handlers.task_handlers import (
    CancelTaskHandler,
    PauseTaskHandler,
    ResumeTaskHandler,
    ScheduleTaskHandler,
)
from courier.scheduling.task_service import TaskManager


class IpcDeps:
    """Dependencies for IPC handlers, passed as a context object."""

    def __init__(
        self,
        registered_groups: Callable[[], dict[str, RegisteredGroup]],
        task_manager: TaskManager,
    ) -> None:
        self.registered_groups = registered_groups
        self.task_manager = task_manager


class IpcWatcher:
    """Processes command files written by containers under data/ipc/<group>/tasks."""

    def __init__(self, deps: IpcDeps, poll_interval: float = IPC_POLL_INTERVAL) -> None:
        self._deps = deps
        self._dispatcher = IpcCommandDispatcher([
            ScheduleTaskHandler(),
            PauseTaskHandler(),
            ResumeTaskHandler(),
            CancelTaskHandler(),
        ])
        self._loop = PollLoop("IPC watcher", poll_interval, self.process_once)

    @property
    def is_running(self) -> bool:
        return self._loop.running

    def start(self) -> None:
        GroupPaths.ipc_root().mkdir(parents=True, exist_ok=True)
        self._loop.start()

    def stop(self) -> None:
        self._loop.stop()

    async def process_once(self) -> int:
        """Process every pending command file once. Returns the number of files handled."""
        ipc_root = GroupPaths.ipc_root()
        if not ipc_root.exists():
            return 0

        handled = 0
        for group_dir in sorted(ipc_root.iterdir()):
            if not group_dir.is_dir() or group_dir.name == "errors":
                continue
            handled += await self._process_tasks_dir(group_dir / "tasks", group_dir.name)
        return handled

    async def _process_tasks_dir(self, tasks_dir: Path, source_group: str) -> int:
        if not tasks_dir.exists():
            return 0

        is_main = source_group == MAIN_GROUP_FOLDER
        handled = 0
        for file_path in sorted(f for f in tasks_dir.iterdir() if f.suffix == ".json"):
            try:
                data = json.loads(file_path.read_text())
                if not isinstance(data, dict):
                    raise ValueError("IPC command must be a JSON object")
                await self._dispatcher.dispatch(data, source_group, is_main, self._deps)
                file_path.unlink()
            except Exception:
                logger.exception("Error processing IPC task", file=file_path.name, source_group=source_group)
                self._move_to_errors(file_path, source_group)
            handled += 1
        return handled

    def _move_to_errors(self, file_path: Path, source_group: str) -> None:
        error_dir = GroupPaths.ipc_root() / "errors"
        try:
            error_dir.mkdir(parents=True, exist_ok=True)
            file_path.rename(error_dir / f"{source_group}-{file_path.name}")
        except OSError as err:
            logger.error("Failed to move IPC file to errors", file=file_path.name, error=str(err))
