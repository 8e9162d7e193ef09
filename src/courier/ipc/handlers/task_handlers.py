"""Task IPC handlers: schedule, pause, resume, cancel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from courier.groups.authorization import AuthContext, AuthorizationPolicy
from courier.infrastructure.logger import logger
from courier.ipc.dispatcher import HandlerContext, IpcCommandHandler, IpcHandlerError
from courier.scheduling.types import ContextMode, ScheduleType

_SCHEDULE_TYPES = ("cron", "interval", "once")
# "group" is the legacy name for "shared".
_CONTEXT_MODES = {"isolated": "isolated", "shared": "shared", "group": "shared"}


@dataclass
class ScheduleTaskPayload:
    prompt: str
    schedule_type: ScheduleType
    schedule_value: str
    target_jid: str
    context_mode: ContextMode


class ScheduleTaskHandler(IpcCommandHandler):
    command = "schedule_task"

    async def validate(self, data: dict[str, Any]) -> ScheduleTaskPayload:
        required = ("prompt", "schedule_type", "schedule_value", "targetJid")
        missing = [key for key in required if not data.get(key)]
        if missing:
            raise IpcHandlerError("Missing required fields", {"missing": missing})
        if data["schedule_type"] not in _SCHEDULE_TYPES:
            raise IpcHandlerError("Invalid schedule type", {"scheduleType": data["schedule_type"]})
        return ScheduleTaskPayload(
            prompt=data["prompt"],
            schedule_type=data["schedule_type"],
            schedule_value=str(data["schedule_value"]),
            target_jid=data["targetJid"],
            context_mode=_CONTEXT_MODES.get(data.get("context_mode") or "isolated", "isolated"),  # type: ignore[arg-type]
        )

    async def execute(self, payload: ScheduleTaskPayload, context: HandlerContext) -> None:
        target_group = context.deps.registered_groups().get(payload.target_jid)
        if not target_group:
            raise IpcHandlerError("Target group not registered", {"targetJid": payload.target_jid})

        target_folder = target_group.folder
        auth = AuthorizationPolicy(AuthContext(source_group=context.source_group, is_main=context.is_main))
        if not auth.can_schedule_task(target_folder):
            raise IpcHandlerError("Unauthorized schedule_task attempt", {"target_folder": target_folder})

        try:
            task_id = context.deps.task_manager.create(
                group_folder=target_folder,
                chat_jid=payload.target_jid,
                prompt=payload.prompt,
                schedule_type=payload.schedule_type,
                schedule_value=payload.schedule_value,
                context_mode=payload.context_mode,
            )
        except ValueError as err:
            raise IpcHandlerError(str(err), {"schedule_value": payload.schedule_value})
        logger.info("Task created via IPC", task_id=task_id, source_group=context.source_group, target_folder=target_folder)


class _TaskIdHandler(IpcCommandHandler):
    """Shared validation and authorization for commands addressed by taskId."""

    async def validate(self, data: dict[str, Any]) -> str:
        if not data.get("taskId"):
            raise IpcHandlerError("Missing taskId")
        return data["taskId"]

    def _authorize(self, task_id: str, context: HandlerContext) -> None:
        try:
            context.deps.task_manager.get_authorized(task_id, context.source_group, context.is_main)
        except (ValueError, PermissionError) as err:
            raise IpcHandlerError(str(err), {"task_id": task_id})


class PauseTaskHandler(_TaskIdHandler):
    command = "pause_task"

    async def execute(self, task_id: str, context: HandlerContext) -> None:
        self._authorize(task_id, context)
        if not context.deps.task_manager.pause(task_id):
            raise IpcHandlerError("Task is not active", {"task_id": task_id})
        logger.info("Task paused via IPC", task_id=task_id, source_group=context.source_group)


class ResumeTaskHandler(_TaskIdHandler):
    command = "resume_task"

    async def execute(self, task_id: str, context: HandlerContext) -> None:
        self._authorize(task_id, context)
        if not context.deps.task_manager.resume(task_id):
            raise IpcHandlerError("Task is not paused", {"task_id": task_id})
        logger.info("Task resumed via IPC", task_id=task_id, source_group=context.source_group)


class CancelTaskHandler(_TaskIdHandler):
    command = "cancel_task"

    async def execute(self, task_id: str, context: HandlerContext) -> None:
        self._authorize(task_id, context)
        context.deps.task_manager.cancel(task_id)
        logger.info("Task cancelled via IPC", task_id=task_id, source_group=context.source_group)
