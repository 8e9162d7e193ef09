"""Entry point: python -m courier"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from courier.infrastructure.clock import now_iso
from courier.infrastructure.logger import logger


async def main() -> None:
    from courier.app import Orchestrator
    from courier.infrastructure.database import AppDatabase
    from courier.messaging.local import LocalChannel

    db = AppDatabase.open()
    orchestrator = Orchestrator(db, channels=[LocalChannel()])

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await orchestrator.start()
        await shutdown_event.wait()
    finally:
        await orchestrator.shutdown()
        db.close()


def run_register() -> None:
    """Register a chat so scheduled tasks and IPC commands can target it."""
    from courier.groups.paths import GroupPaths
    from courier.groups.types import RegisteredGroup
    from courier.infrastructure.config import ASSISTANT_NAME
    from courier.infrastructure.database import AppDatabase

    parser = argparse.ArgumentParser(prog="courier register", description="Register a group")
    parser.add_argument("jid", help="Chat address, e.g. local:main")
    parser.add_argument("name", help="Display name")
    parser.add_argument("folder", help="Folder under groups/ (use 'main' for the main group)")
    parser.add_argument("--trigger", default=f"@{ASSISTANT_NAME}", help="Trigger word")
    parser.add_argument("--channel", default="local", help="Channel that owns the JID")
    args = parser.parse_args(sys.argv[2:])  # skip "register" subcommand

    db = AppDatabase.open()
    try:
        db.group_repo.set_registered_group(
            args.jid,
            RegisteredGroup(
                name=args.name,
                folder=args.folder,
                trigger=args.trigger,
                added_at=now_iso(),
                channel=args.channel,
            ),
        )
    finally:
        db.close()
    GroupPaths.group_dir(args.folder).mkdir(parents=True, exist_ok=True)
    print(f"Registered {args.jid} -> groups/{args.folder}")


def run() -> None:
    if len(sys.argv) > 1 and sys.argv[1] == "register":
        run_register()
        return

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
