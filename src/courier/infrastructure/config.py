"""Configuration constants, .env parsing, and timeout settings."""

from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Does NOT load into os.environ; callers decide what to do with values.
    This keeps secrets out of the process environment so they don't leak
    to child processes.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        key, sep, value = trimmed.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key not in wanted:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


def _setting(name: str, default: str) -> str:
    return os.environ.get(name) or _env_config.get(name) or default


# Non-secret settings may also live in .env; the process environment wins.
_env_config = read_env_file([
    "ASSISTANT_NAME",
    "CONTAINER_IMAGE",
    "CONTAINER_RUNTIME",
    "CONTAINER_TIMEOUT",
    "IDLE_TIMEOUT",
    "TZ",
])

ASSISTANT_NAME: str = _setting("ASSISTANT_NAME", "Courier")

SCHEDULER_POLL_INTERVAL: float = float(os.environ.get("SCHEDULER_POLL_INTERVAL", "60"))  # seconds
IPC_POLL_INTERVAL: float = float(os.environ.get("IPC_POLL_INTERVAL", "1"))

# Absolute paths
PROJECT_ROOT: Path = Path.cwd()
HOME_DIR: Path = Path.home()

MOUNT_ALLOWLIST_PATH: Path = HOME_DIR / ".config" / "courier" / "mount-allowlist.json"
STORE_DIR: Path = (PROJECT_ROOT / "store").resolve()
GROUPS_DIR: Path = (PROJECT_ROOT / "groups").resolve()
DATA_DIR: Path = (PROJECT_ROOT / "data").resolve()
MAIN_GROUP_FOLDER: str = "main"

CONTAINER_IMAGE: str = _setting("CONTAINER_IMAGE", "courier-agent:latest")
CONTAINER_RUNTIME: str = _setting("CONTAINER_RUNTIME", "docker")
CONTAINER_TIMEOUT: int = int(_setting("CONTAINER_TIMEOUT", "1800000"))  # 30min
IDLE_TIMEOUT: int = int(_setting("IDLE_TIMEOUT", "1800000"))  # 30min
HARD_TIMEOUT_MARGIN: int = 30_000
CONTAINER_MAX_OUTPUT_SIZE: int = int(os.environ.get("CONTAINER_MAX_OUTPUT_SIZE", "10485760"))  # 10MB
CONTAINER_KILL_GRACE: float = float(os.environ.get("CONTAINER_KILL_GRACE", "10"))  # seconds
MAX_CONCURRENT_CONTAINERS: int = max(1, int(os.environ.get("MAX_CONCURRENT_CONTAINERS", "5")))

# Keys forwarded to the agent over stdin, never through the environment.
SECRET_KEYS: list[str] = ["ANTHROPIC_API_KEY", "CLAUDE_CODE_OAUTH_TOKEN"]


def _resolve_timezone() -> str:
    tz = _setting("TZ", "")
    if not tz:
        tz_file = Path("/etc/timezone")
        try:
            if tz_file.exists():
                tz = tz_file.read_text().strip()
            else:
                # /etc/localtime -> /usr/share/zoneinfo/Europe/Berlin
                parts = Path("/etc/localtime").resolve().parts
                if "zoneinfo" in parts:
                    tz = "/".join(parts[parts.index("zoneinfo") + 1 :])
        except OSError:
            tz = ""

    if not tz:
        return "UTC"

    try:
        ZoneInfo(tz)
        return tz
    except (ZoneInfoNotFoundError, ValueError):
        return "UTC"


TIMEZONE: str = _resolve_timezone()


class TimeoutConfig:
    """Idle and hard timeouts for one container execution, in milliseconds."""

    def __init__(
        self,
        container_timeout: int = CONTAINER_TIMEOUT,
        idle_timeout: int = IDLE_TIMEOUT,
        hard_margin: int = HARD_TIMEOUT_MARGIN,
    ) -> None:
        self.container_timeout = container_timeout
        self.idle_timeout = idle_timeout
        self.hard_margin = hard_margin

    def get_hard_timeout(self) -> int:
        """Absolute ceiling, always strictly longer than the idle timeout."""
        return max(self.container_timeout, self.idle_timeout + self.hard_margin)

    def for_group(self, group: object) -> TimeoutConfig:
        """Apply the group's container_config.timeout override, if any."""
        container_config = getattr(group, "container_config", None)
        group_timeout = (
            container_config.timeout if container_config and container_config.timeout else self.container_timeout
        )
        return TimeoutConfig(group_timeout, self.idle_timeout, self.hard_margin)
