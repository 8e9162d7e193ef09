"""Scheduled task CRUD, due-task queries, and run logging."""

from __future__ import annotations

import sqlite3

from courier.scheduling.types import ScheduledTask, TaskRunLog

# Columns update_task may touch. next_run, last_run and status transitions
# caused by a run go through record_run only.
_UPDATABLE = {"prompt", "schedule_type", "schedule_value", "context_mode", "next_run", "status"}


class TaskRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def create_task(self, task: ScheduledTask) -> None:
        self._db.execute(
            """INSERT INTO scheduled_tasks
               (id, group_folder, chat_jid, prompt, schedule_type, schedule_value, context_mode,
                next_run, status, created_at, session_id)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                task.id, task.group_folder, task.chat_jid, task.prompt,
                task.schedule_type, task.schedule_value, task.context_mode,
                task.next_run, task.status, task.created_at, task.session_id,
            ),
        )
        self._db.commit()

    def get_task_by_id(self, id: str) -> ScheduledTask | None:
        row = self._db.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (id,)).fetchone()
        if not row:
            return None
        return self._row_to_task(row)

    def get_tasks_for_group(self, group_folder: str) -> list[ScheduledTask]:
        rows = self._db.execute(
            "SELECT * FROM scheduled_tasks WHERE group_folder = ? ORDER BY created_at DESC", (group_folder,)
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def get_all_tasks(self) -> list[ScheduledTask]:
        rows = self._db.execute("SELECT * FROM scheduled_tasks ORDER BY created_at DESC").fetchall()
        return [self._row_to_task(row) for row in rows]

    def update_task(self, id: str, **updates: str | None) -> None:
        """Set the given non-None columns."""
        fields: list[str] = []
        values: list[str] = []
        for key, value in updates.items():
            if key not in _UPDATABLE:
                raise ValueError(f"Cannot update column: {key}")
            if value is not None:
                fields.append(f"{key} = ?")
                values.append(value)
        if not fields:
            return
        values.append(id)
        self._db.execute(f"UPDATE scheduled_tasks SET {', '.join(fields)} WHERE id = ?", values)
        self._db.commit()

    def set_status(self, id: str, status: str, expected: str) -> bool:
        """Compare-and-set the status. Returns False if the task was not in `expected`."""
        result = self._db.execute(
            "UPDATE scheduled_tasks SET status = ? WHERE id = ? AND status = ?",
            (status, id, expected),
        )
        self._db.commit()
        return result.rowcount > 0

    def delete_task(self, id: str) -> None:
        with self._db:
            self._db.execute("DELETE FROM task_run_logs WHERE task_id = ?", (id,))
            self._db.execute("DELETE FROM scheduled_tasks WHERE id = ?", (id,))

    def get_due_tasks(self, now: str) -> list[ScheduledTask]:
        """Active tasks whose next_run is at or before `now`, earliest first."""
        rows = self._db.execute(
            """SELECT * FROM scheduled_tasks
               WHERE status = 'active' AND next_run IS NOT NULL AND next_run <= ?
               ORDER BY next_run""",
            (now,),
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def record_run(
        self,
        log: TaskRunLog,
        next_run: str | None,
        last_result: str,
        session_id: str | None = None,
    ) -> None:
        """Append the run log and advance the task in one transaction.

        status becomes 'completed' exactly when next_run is set to NULL.
        session_id is only overwritten when a new one is given.
        """
        with self._db:
            self._db.execute(
                """INSERT INTO task_run_logs (task_id, run_at, duration_ms, status, result, error)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (log.task_id, log.run_at, log.duration_ms, log.status, log.result, log.error),
            )
            self._db.execute(
                """UPDATE scheduled_tasks
                   SET next_run = ?, last_run = ?, last_result = ?,
                       status = CASE WHEN ? IS NULL THEN 'completed' ELSE status END,
                       session_id = COALESCE(?, session_id)
                   WHERE id = ?""",
                (next_run, log.run_at, last_result, next_run, session_id, log.task_id),
            )

    def get_run_logs(self, task_id: str, limit: int = 50) -> list[TaskRunLog]:
        rows = self._db.execute(
            """SELECT task_id, run_at, duration_ms, status, result, error FROM task_run_logs
               WHERE task_id = ? ORDER BY run_at DESC, id DESC LIMIT ?""",
            (task_id, limit),
        ).fetchall()
        return [TaskRunLog(**dict(row)) for row in rows]

    def _row_to_task(self, row: sqlite3.Row) -> ScheduledTask:
        context_mode = row["context_mode"] or "isolated"
        if context_mode == "group":
            context_mode = "shared"
        return ScheduledTask(
            id=row["id"],
            group_folder=row["group_folder"],
            chat_jid=row["chat_jid"],
            prompt=row["prompt"],
            schedule_type=row["schedule_type"],
            schedule_value=row["schedule_value"],
            context_mode=context_mode,
            next_run=row["next_run"],
            last_run=row["last_run"],
            last_result=row["last_result"],
            status=row["status"],
            created_at=row["created_at"],
            session_id=row["session_id"],
        )
