"""Group domain types."""

from __future__ import annotations

from pydantic import BaseModel


class AdditionalMount(BaseModel):
    host_path: str  # Absolute path on host (supports ~ for home)
    container_path: str | None = None  # Defaults to /workspace/extra/<basename>
    readonly: bool = True


class AllowedRoot(BaseModel):
    path: str  # Absolute path or ~ for home
    allow_read_write: bool = False
    description: str | None = None


class MountAllowlist(BaseModel):
    allowed_roots: list[AllowedRoot]
    blocked_patterns: list[str]
    non_main_read_only: bool = True


class ContainerConfig(BaseModel):
    additional_mounts: list[AdditionalMount] | None = None
    timeout: int | None = None  # ms, overrides CONTAINER_TIMEOUT


class RegisteredGroup(BaseModel):
    """A chat the assistant serves, bound to a workspace folder."""

    name: str
    folder: str
    trigger: str
    added_at: str
    channel: str = "local"
    container_config: ContainerConfig | None = None
    requires_trigger: bool | None = True
