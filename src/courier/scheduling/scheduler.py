"""Task scheduler — polls for due tasks and runs each one in a container."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Awaitable, Callable

from courier.execution.container_runner import ContainerInput, ContainerRunner
from courier.execution.output_parser import ContainerOutput
from courier.groups.types import RegisteredGroup
from courier.infrastructure.clock import to_iso, utc_now
from courier.infrastructure.config import MAIN_GROUP_FOLDER, MAX_CONCURRENT_CONTAINERS, SCHEDULER_POLL_INTERVAL
from courier.infrastructure.logger import logger
from courier.infrastructure.poll_loop import PollLoop
from courier.scheduling.task_service import TaskManager
from courier.scheduling.types import ScheduledTask, TaskRunLog


class SchedulerDependencies:
    def __init__(
        self,
        registered_groups: Callable[[], dict[str, RegisteredGroup]],
        task_manager: TaskManager,
        container_runner: ContainerRunner,
        send_message: Callable[[str, str], Awaitable[object]],
    ) -> None:
        self.registered_groups = registered_groups
        self.task_manager = task_manager
        self.container_runner = container_runner
        self.send_message = send_message


class TaskScheduler:
    """Discovers due tasks and executes them, at most one run per task id at a time."""

    def __init__(
        self,
        deps: SchedulerDependencies,
        poll_interval: float = SCHEDULER_POLL_INTERVAL,
        max_concurrent: int = MAX_CONCURRENT_CONTAINERS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._deps = deps
        self._clock = clock
        self._slots = asyncio.Semaphore(max_concurrent)
        self._in_flight: dict[str, asyncio.Task[TaskRunLog | None]] = {}
        self._loop = PollLoop("Scheduler", poll_interval, self.poll)

    @property
    def is_running(self) -> bool:
        return self._loop.running

    @property
    def in_flight(self) -> set[str]:
        return set(self._in_flight)

    def find_due_tasks(self, now: datetime | None = None) -> list[ScheduledTask]:
        return self._deps.task_manager.get_due_tasks(now or self._clock())

    async def poll(self) -> list[str]:
        """Run one discovery cycle. Returns the ids of the tasks it started."""
        due_tasks = self.find_due_tasks()
        if due_tasks:
            logger.info("Found due tasks", count=len(due_tasks))

        started: list[str] = []
        for task in due_tasks:
            if task.id in self._in_flight:
                logger.debug("Task already running, skipping", task_id=task.id)
                continue
            run = asyncio.create_task(self._run_guarded(task.id), name=f"task-{task.id}")
            self._in_flight[task.id] = run
            run.add_done_callback(lambda _, task_id=task.id: self._in_flight.pop(task_id, None))
            started.append(task.id)
        return started

    async def _run_guarded(self, task_id: str) -> TaskRunLog | None:
        async with self._slots:
            # Paused or cancelled while waiting for a slot.
            task = self._deps.task_manager.get_by_id(task_id)
            if not task or task.status != "active":
                logger.info("Task no longer active, skipping run", task_id=task_id)
                return None
            try:
                return await self.execute_task(task)
            except Exception:
                logger.exception("Scheduled task run failed", task_id=task_id)
                return None

    async def execute_task(self, task: ScheduledTask) -> TaskRunLog:
        """Run a single task and persist its outcome."""
        run_at = to_iso(self._clock())
        started = time.monotonic()
        logger.info("Running scheduled task", task_id=task.id, group=task.group_folder)

        group = next((g for g in self._deps.registered_groups().values() if g.folder == task.group_folder), None)
        if not group:
            logger.error("Group not found for task", task_id=task.id, group_folder=task.group_folder)
            return self._deps.task_manager.complete_run(
                task,
                run_at=run_at,
                duration_ms=_elapsed_ms(started),
                result=None,
                error=f"Group not found: {task.group_folder}",
                now=self._clock(),
            )

        session_id = task.session_id if task.context_mode == "shared" else None
        streamed: list[str] = []

        async def forward(output: ContainerOutput) -> None:
            if output.result:
                streamed.append(output.result)
                result = await self._deps.send_message(task.chat_jid, output.result)
                if getattr(result, "ok", True) is False:
                    logger.warning("Task output not delivered", task_id=task.id, error=getattr(result, "error", None))

        try:
            output = await self._deps.container_runner.run(
                group,
                ContainerInput(
                    prompt=task.prompt,
                    session_id=session_id,
                    group_folder=task.group_folder,
                    chat_jid=task.chat_jid,
                    is_main=task.group_folder == MAIN_GROUP_FOLDER,
                    is_scheduled_task=True,
                ),
                on_output=forward,
            )
        except Exception as err:
            logger.exception("Container run raised", task_id=task.id)
            output = ContainerOutput(status="error", error=str(err))

        if output.ok:
            result, error = output.result or (streamed[-1] if streamed else None), None
        else:
            result, error = None, output.error or "Unknown error"

        duration_ms = _elapsed_ms(started)
        logger.info(
            "Task completed" if not error else "Task failed",
            task_id=task.id,
            duration_ms=duration_ms,
            error=error,
        )
        return self._deps.task_manager.complete_run(
            task,
            run_at=run_at,
            duration_ms=duration_ms,
            result=result,
            error=error,
            session_id=output.new_session_id if task.context_mode == "shared" else None,
            now=self._clock(),
        )

    # --- Lifecycle ---

    def start(self) -> None:
        self._loop.start()

    def stop(self) -> None:
        self._loop.stop()

    async def drain(self) -> None:
        """Wait for every in-flight execution to finish."""
        pending = list(self._in_flight.values())
        if pending:
            logger.info("Waiting for running tasks", count=len(pending))
            await asyncio.gather(*pending, return_exceptions=True)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
