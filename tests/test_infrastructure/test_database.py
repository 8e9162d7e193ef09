"""Tests for database initialization and schema."""

import sqlite3

from courier.infrastructure.database import AppDatabase, create_schema


class TestAppDatabase:
    def test_init_creates_schema(self, db):
        tables = db.db.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name").fetchall()
        table_names = [row[0] for row in tables]
        assert "scheduled_tasks" in table_names
        assert "task_run_logs" in table_names
        assert "registered_groups" in table_names

    def test_migrated_columns_exist(self, db):
        columns = {row[1] for row in db.db.execute("PRAGMA table_info(scheduled_tasks)")}
        assert {"context_mode", "session_id"} <= columns

    def test_repos_initialized(self, db):
        assert db.task_repo is not None
        assert db.group_repo is not None

    def test_multiple_init_is_safe(self, db):
        create_schema(db.db)
        create_schema(db.db)

    def test_instances_are_isolated(self):
        first = AppDatabase.in_memory()
        second = AppDatabase.in_memory()
        first.db.execute(
            "INSERT INTO registered_groups (jid, name, folder, trigger_pattern, added_at) VALUES ('a', 'A', 'a', '@x', 'now')"
        )
        assert second.group_repo.get_all_registered_groups() == {}
        first.close()
        second.close()

    def test_open_file(self, tmp_path):
        path = tmp_path / "store" / "courier.db"
        db = AppDatabase.open(path)
        db.close()
        assert path.exists()

    def test_legacy_group_context_mode_migrated(self, tmp_path):
        path = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(path))
        conn.executescript("""
            CREATE TABLE scheduled_tasks (
                id TEXT PRIMARY KEY, group_folder TEXT NOT NULL, chat_jid TEXT NOT NULL,
                prompt TEXT NOT NULL, schedule_type TEXT NOT NULL, schedule_value TEXT NOT NULL,
                next_run TEXT, last_run TEXT, last_result TEXT, status TEXT DEFAULT 'active',
                created_at TEXT NOT NULL, context_mode TEXT DEFAULT 'isolated'
            );
            INSERT INTO scheduled_tasks (id, group_folder, chat_jid, prompt, schedule_type, schedule_value, created_at, context_mode)
            VALUES ('t1', 'main', 'local:main', 'p', 'interval', '60000', 'now', 'group');
        """)
        conn.close()

        db = AppDatabase.open(path)
        try:
            row = db.db.execute("SELECT context_mode, session_id FROM scheduled_tasks WHERE id = 't1'").fetchone()
            assert row["context_mode"] == "shared"
            assert row["session_id"] is None
        finally:
            db.close()
