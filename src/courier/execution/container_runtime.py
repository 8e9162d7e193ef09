"""Container runtime abstraction — Protocol + Docker/Podman implementations."""

from __future__ import annotations

import shutil
from typing import Protocol


class ContainerRuntime(Protocol):
    """Interface for container runtimes (Docker, Podman, etc.)."""

    @property
    def name(self) -> str: ...

    @property
    def bin(self) -> str:
        """Path to the runtime binary (e.g. 'docker')."""
        ...


class DockerRuntime:
    name = "docker"

    def __init__(self) -> None:
        self._bin = shutil.which("docker") or "docker"

    @property
    def bin(self) -> str:
        return self._bin


class PodmanRuntime:
    name = "podman"

    def __init__(self) -> None:
        self._bin = shutil.which("podman") or "podman"

    @property
    def bin(self) -> str:
        return self._bin


def runtime_from_name(name: str) -> ContainerRuntime:
    runtimes: dict[str, type[DockerRuntime] | type[PodmanRuntime]] = {
        "docker": DockerRuntime,
        "podman": PodmanRuntime,
    }
    try:
        return runtimes[name.lower()]()
    except KeyError:
        raise ValueError(f"Unsupported container runtime: {name}")
