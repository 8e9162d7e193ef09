"""Orchestrator: wires channels, the scheduler and the IPC watcher together."""

from __future__ import annotations

from courier.execution.container_runner import ContainerRunner
from courier.groups.paths import GroupPaths
from courier.groups.types import RegisteredGroup
from courier.infrastructure.database import AppDatabase
from courier.infrastructure.logger import logger
from courier.ipc.watcher import IpcDeps, IpcWatcher
from courier.messaging.channel_registry import ChannelRegistry
from courier.messaging.router import MessageRouter, RouteResult
from courier.messaging.types import Channel
from courier.scheduling.scheduler import SchedulerDependencies, TaskScheduler
from courier.scheduling.task_service import TaskManager


class Orchestrator:
    """Composes all services and manages the application lifecycle."""

    def __init__(
        self,
        db: AppDatabase,
        channels: list[Channel] | None = None,
        container_runner: ContainerRunner | None = None,
    ) -> None:
        self._db = db
        self._channel_registry = ChannelRegistry()
        for channel in channels or []:
            self._channel_registry.register(channel)
        self._router = MessageRouter(self._channel_registry)
        self._registered_groups: dict[str, RegisteredGroup] = {}

        self.task_manager = TaskManager(db.task_repo)
        self.scheduler = TaskScheduler(
            SchedulerDependencies(
                registered_groups=lambda: self._registered_groups,
                task_manager=self.task_manager,
                container_runner=container_runner or ContainerRunner(),
                send_message=self.send_message,
            )
        )
        self.ipc_watcher = IpcWatcher(
            IpcDeps(registered_groups=lambda: self._registered_groups, task_manager=self.task_manager)
        )
        self._running = False

    @property
    def registered_groups(self) -> dict[str, RegisteredGroup]:
        return dict(self._registered_groups)

    async def start(self) -> None:
        """Load state, connect channels and start the polling loops."""
        logger.info("Starting Courier...")

        self._registered_groups = self._db.group_repo.get_all_registered_groups()
        logger.info("Loaded registered groups", count=len(self._registered_groups))

        await self._channel_registry.connect_all()

        self.ipc_watcher.start()
        self.scheduler.start()

        self._running = True
        logger.info("Courier started successfully")

    def register_group(self, jid: str, group: RegisteredGroup) -> None:
        self._registered_groups[jid] = group
        self._db.group_repo.set_registered_group(jid, group)
        GroupPaths.group_dir(group.folder).mkdir(parents=True, exist_ok=True)
        logger.info("Group registered", jid=jid, folder=group.folder)

    async def send_message(self, jid: str, text: str) -> RouteResult:
        return await self._router.send(jid, text)

    async def shutdown(self) -> None:
        """Stop accepting work, let running tasks finish, then disconnect."""
        logger.info("Shutting down Courier...")
        self._running = False

        self.scheduler.stop()
        self.ipc_watcher.stop()
        await self.scheduler.drain()
        await self._channel_registry.disconnect_all()

        logger.info("Courier shut down complete")
