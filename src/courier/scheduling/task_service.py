"""Task manager — centralized task lifecycle and recurrence."""

from __future__ import annotations

import random
import string
import time
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from croniter import croniter

from courier.groups.authorization import AuthContext, AuthorizationPolicy
from courier.infrastructure.clock import to_iso, utc_now
from courier.infrastructure.config import TIMEZONE
from courier.infrastructure.logger import logger
from courier.scheduling.repository import TaskRepository
from courier.scheduling.schedule_parser import parse_once_schedule_value
from courier.scheduling.types import ScheduledTask, TaskRunLog

RESULT_SUMMARY_LIMIT = 200


class TaskManager:
    def __init__(self, task_repo: TaskRepository, timezone: str = TIMEZONE) -> None:
        self._task_repo = task_repo
        self._tz = ZoneInfo(timezone)

    # --- CRUD ---

    def create(
        self,
        group_folder: str,
        chat_jid: str,
        prompt: str,
        schedule_type: str,
        schedule_value: str,
        context_mode: str = "isolated",
        now: datetime | None = None,
    ) -> str:
        if context_mode not in ("isolated", "shared"):
            raise ValueError(f"Invalid context mode: {context_mode}")
        now = now or utc_now()
        next_run = self.compute_next_run(schedule_type, schedule_value, now)
        rand = "".join(random.choices(string.ascii_lowercase + string.digits, k=8))
        task_id = f"task-{int(time.time() * 1000)}-{rand}"

        task = ScheduledTask(
            id=task_id,
            group_folder=group_folder,
            chat_jid=chat_jid,
            prompt=prompt,
            schedule_type=schedule_type,  # type: ignore[arg-type]
            schedule_value=schedule_value,
            context_mode=context_mode,  # type: ignore[arg-type]
            next_run=next_run,
            status="active",
            created_at=to_iso(now),
        )
        self._task_repo.create_task(task)
        return task_id

    def get_by_id(self, id: str) -> ScheduledTask | None:
        return self._task_repo.get_task_by_id(id)

    def get_all(self) -> list[ScheduledTask]:
        return self._task_repo.get_all_tasks()

    def get_for_group(self, group_folder: str) -> list[ScheduledTask]:
        return self._task_repo.get_tasks_for_group(group_folder)

    def get_run_logs(self, id: str, limit: int = 50) -> list[TaskRunLog]:
        return self._task_repo.get_run_logs(id, limit)

    def update(
        self,
        id: str,
        prompt: str | None = None,
        schedule_type: str | None = None,
        schedule_value: str | None = None,
        now: datetime | None = None,
    ) -> ScheduledTask:
        task = self._task_repo.get_task_by_id(id)
        if not task:
            raise ValueError(f"Task not found: {id}")

        next_run: str | None = None
        status: str | None = None
        if schedule_type is not None or schedule_value is not None:
            next_run = self.compute_next_run(
                schedule_type or task.schedule_type,
                schedule_value or task.schedule_value,
                now or utc_now(),
            )
            # A completed task has no next_run; giving it one reactivates it.
            if task.status == "completed":
                status = "active"
        self._task_repo.update_task(
            id,
            prompt=prompt,
            schedule_type=schedule_type,
            schedule_value=schedule_value,
            next_run=next_run,
            status=status,
        )
        updated = self._task_repo.get_task_by_id(id)
        assert updated is not None
        return updated

    # --- Lifecycle ---

    def pause(self, id: str) -> bool:
        return self._task_repo.set_status(id, "paused", expected="active")

    def resume(self, id: str) -> bool:
        """Resume a paused task. Completed tasks stay completed."""
        return self._task_repo.set_status(id, "active", expected="paused")

    def cancel(self, id: str) -> None:
        self._task_repo.delete_task(id)

    # --- Scheduling ---

    def get_due_tasks(self, now: datetime | None = None) -> list[ScheduledTask]:
        return self._task_repo.get_due_tasks(to_iso(now or utc_now()))

    def complete_run(
        self,
        task: ScheduledTask,
        run_at: str,
        duration_ms: int,
        result: str | None,
        error: str | None,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> TaskRunLog:
        """Persist the outcome of one execution and advance the recurrence."""
        log = TaskRunLog(
            task_id=task.id,
            run_at=run_at,
            duration_ms=duration_ms,
            status="error" if error else "success",
            result=result,
            error=error,
        )
        next_run = self.next_run_after_execution(task, now or utc_now())
        if error:
            summary = f"Error: {error}"
        else:
            summary = result[:RESULT_SUMMARY_LIMIT] if result else "Completed"
        self._task_repo.record_run(log, next_run, summary, session_id)
        return log

    # --- Authorization ---

    def get_authorized(self, task_id: str, source_group: str, is_main: bool) -> ScheduledTask:
        task = self._task_repo.get_task_by_id(task_id)
        if not task:
            raise ValueError(f"Task not found: {task_id}")
        auth = AuthorizationPolicy(AuthContext(source_group=source_group, is_main=is_main))
        if not auth.can_manage_task(task.group_folder):
            raise PermissionError(f"Unauthorized task management: {task_id}")
        return task

    # --- Recurrence ---

    def compute_next_run(self, schedule_type: str, schedule_value: str, now: datetime | None = None) -> str | None:
        """First run time for a new or rescheduled task. Raises ValueError on bad input."""
        now = now or utc_now()
        if schedule_type == "cron":
            return self._next_cron(schedule_value, now)
        elif schedule_type == "interval":
            return to_iso(now + timedelta(milliseconds=_parse_interval(schedule_value)))
        elif schedule_type == "once":
            scheduled = parse_once_schedule_value(schedule_value)
            if scheduled is None:
                raise ValueError(f"Invalid timestamp: {schedule_value}")
            return scheduled
        raise ValueError(f"Invalid schedule type: {schedule_type}")

    def next_run_after_execution(self, task: ScheduledTask, now: datetime) -> str | None:
        """Next run after an execution finishing at `now`; None completes the task."""
        if task.schedule_type == "once":
            return None
        try:
            return self.compute_next_run(task.schedule_type, task.schedule_value, now)
        except ValueError as err:
            logger.error("Cannot compute next run, completing task", task_id=task.id, error=str(err))
            return None

    def _next_cron(self, expression: str, now: datetime) -> str:
        try:
            cron = croniter(expression, now.astimezone(self._tz))
            return to_iso(cron.get_next(datetime))
        except (ValueError, KeyError):
            raise ValueError(f"Invalid cron expression: {expression}")


def _parse_interval(value: str) -> int:
    try:
        ms = int(value)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid interval: {value}")
    if ms <= 0:
        raise ValueError(f"Invalid interval: {value}")
    return ms
