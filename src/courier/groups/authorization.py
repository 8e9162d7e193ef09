"""Authorization rules for task commands issued from inside a container."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AuthContext:
    source_group: str
    is_main: bool


class AuthorizationPolicy:
    """The main group may act on any group; every other group only on itself."""

    def __init__(self, ctx: AuthContext) -> None:
        self._ctx = ctx

    @property
    def source_group(self) -> str:
        return self._ctx.source_group

    @property
    def is_main(self) -> bool:
        return self._ctx.is_main

    def can_schedule_task(self, target_group_folder: str) -> bool:
        return self._ctx.is_main or target_group_folder == self._ctx.source_group

    def can_manage_task(self, task_group_folder: str) -> bool:
        return self._ctx.is_main or task_group_folder == self._ctx.source_group
