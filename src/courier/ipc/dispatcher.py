"""IPC command dispatcher and base handler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from courier.infrastructure.logger import logger

if TYPE_CHECKING:
    from courier.ipc.watcher import IpcDeps


class IpcHandlerError(Exception):
    """Expected failure of an IPC command; logged, never fatal to the watcher."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


@dataclass
class HandlerContext:
    source_group: str
    is_main: bool
    deps: IpcDeps


class IpcCommandHandler(ABC):
    """Base class for IPC command handlers."""

    @property
    @abstractmethod
    def command(self) -> str: ...

    @abstractmethod
    async def validate(self, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def execute(self, payload: Any, context: HandlerContext) -> None: ...

    async def handle(self, data: dict[str, Any], source_group: str, is_main: bool, deps: IpcDeps) -> None:
        context = HandlerContext(source_group=source_group, is_main=is_main, deps=deps)
        validated = await self.validate(data)
        await self.execute(validated, context)


class IpcCommandDispatcher:
    """Routes IPC commands to registered handlers."""

    def __init__(self, handlers: list[IpcCommandHandler]) -> None:
        self._handlers: dict[str, IpcCommandHandler] = {h.command: h for h in handlers}

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, data: dict[str, Any], source_group: str, is_main: bool, deps: IpcDeps) -> bool:
        """Run the handler for data["type"]. Returns False if the command was rejected."""
        command_type = data.get("type")
        handler = self._handlers.get(command_type) if isinstance(command_type, str) else None
        if not handler:
            logger.warning("Unknown IPC command", type=command_type, source_group=source_group)
            return False
        try:
            await handler.handle(data, source_group, is_main, deps)
        except IpcHandlerError as err:
            logger.warning(err.args[0], command=command_type, source_group=source_group, **err.details)
            return False
        return True
