"""Registered group persistence."""

from __future__ import annotations

import sqlite3

from courier.groups.types import ContainerConfig, RegisteredGroup
from courier.infrastructure.logger import logger


class GroupRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def get_registered_group(self, jid: str) -> RegisteredGroup | None:
        row = self._db.execute("SELECT * FROM registered_groups WHERE jid = ?", (jid,)).fetchone()
        if not row:
            return None
        return self._row_to_group(row)

    def get_by_folder(self, folder: str) -> RegisteredGroup | None:
        row = self._db.execute("SELECT * FROM registered_groups WHERE folder = ?", (folder,)).fetchone()
        if not row:
            return None
        return self._row_to_group(row)

    def set_registered_group(self, jid: str, group: RegisteredGroup) -> None:
        self._db.execute(
            """INSERT OR REPLACE INTO registered_groups
               (jid, name, folder, trigger_pattern, added_at, container_config, requires_trigger, channel)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                jid,
                group.name,
                group.folder,
                group.trigger,
                group.added_at,
                group.container_config.model_dump_json() if group.container_config else None,
                0 if group.requires_trigger is False else 1,
                group.channel,
            ),
        )
        self._db.commit()

    def delete_registered_group(self, jid: str) -> None:
        self._db.execute("DELETE FROM registered_groups WHERE jid = ?", (jid,))
        self._db.commit()

    def get_all_registered_groups(self) -> dict[str, RegisteredGroup]:
        rows = self._db.execute("SELECT * FROM registered_groups").fetchall()
        return {row["jid"]: self._row_to_group(row) for row in rows}

    def _row_to_group(self, row: sqlite3.Row) -> RegisteredGroup:
        container_config = None
        if row["container_config"]:
            try:
                container_config = ContainerConfig.model_validate_json(row["container_config"])
            except ValueError:
                logger.warning("Ignoring unreadable container config", jid=row["jid"])

        requires_trigger: bool | None = None
        if row["requires_trigger"] is not None:
            requires_trigger = row["requires_trigger"] == 1

        return RegisteredGroup(
            name=row["name"],
            folder=row["folder"],
            trigger=row["trigger_pattern"],
            added_at=row["added_at"],
            channel=row["channel"] or "local",
            container_config=container_config,
            requires_trigger=requires_trigger,
        )
