"""Mount allowlist validation for containers."""

from __future__ import annotations

import json
from pathlib import Path

from courier.groups.types import MountAllowlist
from courier.infrastructure.config import MOUNT_ALLOWLIST_PATH
from courier.infrastructure.logger import logger


class MountValidationError(Exception):
    """A requested mount is not permitted; the container must not start."""

    def __init__(self, message: str, host_path: str | None = None) -> None:
        super().__init__(message)
        self.host_path = host_path


def load_mount_allowlist(path: Path = MOUNT_ALLOWLIST_PATH) -> MountAllowlist | None:
    """Load the mount allowlist. Returns None if the file is missing or unreadable."""
    if not path.exists():
        return None
    try:
        return MountAllowlist(**json.loads(path.read_text()))
    except (OSError, ValueError, TypeError):
        logger.warning("Failed to load mount allowlist", path=str(path))
        return None


def _expand_home(p: str) -> str:
    return str(Path(p).expanduser())


def _is_within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip("/") + "/")


def validate_mount(
    host_path: str,
    allowlist: MountAllowlist | None,
    is_main: bool,
) -> tuple[bool, bool]:
    """Validate a mount path against the allowlist.

    Returns (allowed, read_only). Without an allowlist every mount is
    allowed but forced read-only.
    """
    if allowlist is None:
        return True, True

    resolved = str(Path(_expand_home(host_path)).resolve())

    for pattern in allowlist.blocked_patterns:
        if _is_within(resolved, _expand_home(pattern)) or pattern in Path(resolved).parts:
            return False, True

    for root in allowlist.allowed_roots:
        root_path = str(Path(_expand_home(root.path)).resolve())
        if _is_within(resolved, root_path):
            read_only = not root.allow_read_write
            if not is_main and allowlist.non_main_read_only:
                read_only = True
            return True, read_only

    return False, True
