"""SQLite schema, migrations, and the AppDatabase handle."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from courier.infrastructure.config import STORE_DIR
from courier.infrastructure.logger import logger


def create_schema(db: sqlite3.Connection) -> None:
    """Create all tables and indexes. Safe to call multiple times (IF NOT EXISTS)."""
    db.executescript("""
        CREATE TABLE IF NOT EXISTS scheduled_tasks (
            id TEXT PRIMARY KEY,
            group_folder TEXT NOT NULL,
            chat_jid TEXT NOT NULL,
            prompt TEXT NOT NULL,
            schedule_type TEXT NOT NULL,
            schedule_value TEXT NOT NULL,
            next_run TEXT,
            last_run TEXT,
            last_result TEXT,
            status TEXT DEFAULT 'active',
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_next_run ON scheduled_tasks(next_run);
        CREATE INDEX IF NOT EXISTS idx_status ON scheduled_tasks(status);

        CREATE TABLE IF NOT EXISTS task_run_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id TEXT NOT NULL,
            run_at TEXT NOT NULL,
            duration_ms INTEGER NOT NULL,
            status TEXT NOT NULL,
            result TEXT,
            error TEXT,
            FOREIGN KEY (task_id) REFERENCES scheduled_tasks(id)
        );
        CREATE INDEX IF NOT EXISTS idx_task_run_logs ON task_run_logs(task_id, run_at);

        CREATE TABLE IF NOT EXISTS registered_groups (
            jid TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            folder TEXT NOT NULL UNIQUE,
            trigger_pattern TEXT NOT NULL,
            added_at TEXT NOT NULL,
            container_config TEXT,
            requires_trigger INTEGER DEFAULT 1
        );
    """)

    _run_schema_migrations(db)


# Additive column migrations. Each one fails with OperationalError
# ("duplicate column") once applied, which makes re-running a no-op.
_MIGRATIONS = [
    "ALTER TABLE scheduled_tasks ADD COLUMN context_mode TEXT DEFAULT 'isolated'",
    "ALTER TABLE scheduled_tasks ADD COLUMN session_id TEXT",
    "ALTER TABLE registered_groups ADD COLUMN channel TEXT DEFAULT 'local'",
]


def _run_schema_migrations(db: sqlite3.Connection) -> None:
    for statement in _MIGRATIONS:
        try:
            db.execute(statement)
            db.commit()
        except sqlite3.OperationalError:
            pass

    # Legacy name for shared-session tasks.
    db.execute("UPDATE scheduled_tasks SET context_mode = 'shared' WHERE context_mode = 'group'")
    db.commit()


class AppDatabase:
    """An open database connection plus the repositories built on it.

    Constructed once at startup and passed to whatever needs storage; tests
    build their own isolated instance with in_memory().
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        from courier.groups.repository import GroupRepository
        from courier.scheduling.repository import TaskRepository

        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        create_schema(conn)

        self._db = conn
        self.task_repo = TaskRepository(conn)
        self.group_repo = GroupRepository(conn)

    @property
    def db(self) -> sqlite3.Connection:
        return self._db

    @classmethod
    def open(cls, path: Path | None = None) -> AppDatabase:
        """Open (or create) the database file, by default store/courier.db."""
        db_path = path or STORE_DIR / "courier.db"
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Opening database", path=str(db_path))
        return cls(sqlite3.connect(str(db_path)))

    @classmethod
    def in_memory(cls) -> AppDatabase:
        return cls(sqlite3.connect(":memory:"))

    def close(self) -> None:
        self._db.close()
