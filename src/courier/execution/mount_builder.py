"""Mount factory for building container volume arguments."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from courier.execution.mount_security import MountValidationError, load_mount_allowlist, validate_mount
from courier.groups.paths import GroupPaths
from courier.groups.types import AdditionalMount, MountAllowlist, RegisteredGroup
from courier.infrastructure.logger import logger


class MountFactory(Protocol):
    """Builds -v arguments for a group. Raises MountValidationError to refuse the run."""

    def build_mounts(self, group: RegisteredGroup, is_main: bool) -> list[str]: ...


class DefaultMountFactory:
    """Mounts the group workspace, its IPC and session dirs, plus allowlisted extras."""

    def __init__(self, allowlist: MountAllowlist | None = None) -> None:
        self._allowlist = allowlist if allowlist is not None else load_mount_allowlist()

    def build_mounts(self, group: RegisteredGroup, is_main: bool) -> list[str]:
        mounts: list[str] = []

        group_dir = GroupPaths.group_dir(group.folder)
        group_dir.mkdir(parents=True, exist_ok=True)
        mounts.extend(["-v", f"{group_dir}:/workspace/group"])

        ipc_dir = GroupPaths.ipc_dir(group.folder)
        GroupPaths.ipc_tasks_dir(group.folder).mkdir(parents=True, exist_ok=True)
        mounts.extend(["-v", f"{ipc_dir}:/workspace/ipc"])

        sessions_dir = GroupPaths.sessions_dir(group.folder)
        sessions_dir.mkdir(parents=True, exist_ok=True)
        mounts.extend(["-v", f"{sessions_dir}:/home/agent/.claude"])

        if group.container_config and group.container_config.additional_mounts:
            for mount in group.container_config.additional_mounts:
                mounts.extend(self._validated_mount(mount, is_main))

        return mounts

    def _validated_mount(self, mount: AdditionalMount, is_main: bool) -> list[str]:
        host_path = str(Path(mount.host_path).expanduser().resolve())

        allowed, force_ro = validate_mount(host_path, self._allowlist, is_main)
        if not allowed:
            logger.warning("Mount blocked by allowlist", host_path=host_path)
            raise MountValidationError(f"Mount not allowed: {host_path}", host_path=host_path)

        container_path = mount.container_path or f"/workspace/extra/{Path(host_path).name}"
        if not container_path.startswith("/") or ".." in Path(container_path).parts:
            raise MountValidationError(f"Invalid container path: {container_path}", host_path=host_path)

        ro_suffix = ":ro" if mount.readonly or force_ro else ""
        return ["-v", f"{host_path}:{container_path}{ro_suffix}"]
