"""Centralized path construction for group-related directories and files."""

from __future__ import annotations

from pathlib import Path

from courier.infrastructure.config import DATA_DIR, GROUPS_DIR


class GroupPaths:
    """Path construction for a group's workspace, logs, IPC and session state."""

    @staticmethod
    def group_dir(folder: str) -> Path:
        """groups/{folder}"""
        return GROUPS_DIR / folder

    @staticmethod
    def logs_dir(folder: str) -> Path:
        """groups/{folder}/logs"""
        return GROUPS_DIR / folder / "logs"

    @staticmethod
    def ipc_root() -> Path:
        """data/ipc"""
        return DATA_DIR / "ipc"

    @staticmethod
    def ipc_dir(folder: str) -> Path:
        """data/ipc/{folder}"""
        return DATA_DIR / "ipc" / folder

    @staticmethod
    def ipc_tasks_dir(folder: str) -> Path:
        """data/ipc/{folder}/tasks"""
        return DATA_DIR / "ipc" / folder / "tasks"

    @staticmethod
    def sessions_dir(folder: str) -> Path:
        """data/sessions/{folder}/.claude"""
        return DATA_DIR / "sessions" / folder / ".claude"
