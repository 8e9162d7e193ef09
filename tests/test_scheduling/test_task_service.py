"""Tests for task service."""

from datetime import datetime, timezone

import pytest

from courier.scheduling.task_service import TaskManager

NOW = datetime(2026, 2, 20, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def task_manager(db):
    return TaskManager(db.task_repo, timezone="UTC")


class TestTaskCreate:
    def test_creates_task(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Say hello", "once", "2099-01-01T00:00:00", now=NOW)
        assert task_id.startswith("task-")
        task = task_manager.get_by_id(task_id)
        assert task.prompt == "Say hello"
        assert task.schedule_type == "once"
        assert task.next_run == "2099-01-01T00:00:00.000Z"
        assert task.created_at == "2026-02-20T10:00:00.000Z"
        assert task.status == "active"

    def test_creates_cron_task(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Daily check", "cron", "0 9 * * *", now=NOW)
        assert task_manager.get_by_id(task_id).next_run == "2026-02-21T09:00:00.000Z"

    def test_creates_interval_task(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Periodic", "interval", "60000", now=NOW)
        assert task_manager.get_by_id(task_id).next_run == "2026-02-20T10:01:00.000Z"

    def test_shared_context_mode(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Chat", "interval", "60000", context_mode="shared", now=NOW)
        assert task_manager.get_by_id(task_id).context_mode == "shared"

    def test_invalid_context_mode(self, task_manager):
        with pytest.raises(ValueError, match="Invalid context mode"):
            task_manager.create("main", "local:main", "Bad", "interval", "60000", context_mode="group")

    def test_invalid_cron(self, task_manager):
        with pytest.raises(ValueError, match="Invalid cron"):
            task_manager.create("main", "local:main", "Bad", "cron", "invalid cron")

    def test_invalid_interval(self, task_manager):
        with pytest.raises(ValueError, match="Invalid interval"):
            task_manager.create("main", "local:main", "Bad", "interval", "not-a-number")

    def test_non_positive_interval(self, task_manager):
        with pytest.raises(ValueError, match="Invalid interval"):
            task_manager.create("main", "local:main", "Bad", "interval", "0")

    def test_invalid_timestamp(self, task_manager):
        with pytest.raises(ValueError, match="Invalid timestamp"):
            task_manager.create("main", "local:main", "Bad", "once", "tomorrow")

    def test_invalid_schedule_type(self, task_manager):
        with pytest.raises(ValueError, match="Invalid schedule type"):
            task_manager.create("main", "local:main", "Bad", "weekly", "1")


class TestComputeNextRun:
    def test_cron_is_strictly_after_now(self, task_manager):
        at_nine = datetime(2026, 2, 20, 9, 0, 0, tzinfo=timezone.utc)
        assert task_manager.compute_next_run("cron", "0 9 * * *", at_nine) == "2026-02-21T09:00:00.000Z"

    def test_cron_evaluated_in_configured_timezone(self, db):
        manager = TaskManager(db.task_repo, timezone="America/New_York")
        # 10:00Z is 05:00 in New York; 09:00 EST is 14:00Z.
        assert manager.compute_next_run("cron", "0 9 * * *", NOW) == "2026-02-20T14:00:00.000Z"

    def test_once_normalises_offset(self, task_manager):
        assert task_manager.compute_next_run("once", "2026-02-20T02:30:00+02:00", NOW) == "2026-02-20T00:30:00.000Z"


class TestTaskUpdate:
    def test_update_prompt_keeps_schedule(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Old", "interval", "60000", now=NOW)
        task = task_manager.update(task_id, prompt="New")
        assert task.prompt == "New"
        assert task.next_run == "2026-02-20T10:01:00.000Z"

    def test_update_schedule_recomputes_next_run(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Periodic", "interval", "60000", now=NOW)
        task = task_manager.update(task_id, schedule_value="120000", now=NOW)
        assert task.schedule_value == "120000"
        assert task.next_run == "2026-02-20T10:02:00.000Z"

    def test_update_rejects_bad_schedule(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Periodic", "interval", "60000", now=NOW)
        with pytest.raises(ValueError):
            task_manager.update(task_id, schedule_type="cron", schedule_value="nope")
        assert task_manager.get_by_id(task_id).schedule_type == "interval"

    def test_rescheduling_completed_task_reactivates_it(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Once", "once", "2026-02-20T00:00:00", now=NOW)
        task_manager.complete_run(task_manager.get_by_id(task_id), "2026-02-20T10:00:00.000Z", 5, "ok", None, now=NOW)
        assert task_manager.get_by_id(task_id).status == "completed"

        task = task_manager.update(task_id, schedule_type="interval", schedule_value="60000", now=NOW)

        assert task.status == "active"
        assert task.next_run == "2026-02-20T10:01:00.000Z"

    def test_prompt_change_leaves_completed_task_completed(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Once", "once", "2026-02-20T00:00:00", now=NOW)
        task_manager.complete_run(task_manager.get_by_id(task_id), "2026-02-20T10:00:00.000Z", 5, "ok", None, now=NOW)

        task = task_manager.update(task_id, prompt="Edited")

        assert task.status == "completed"
        assert task.next_run is None

    def test_rescheduling_paused_task_stays_paused(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Tick", "interval", "60000", now=NOW)
        task_manager.pause(task_id)

        task = task_manager.update(task_id, schedule_value="120000", now=NOW)

        assert task.status == "paused"
        assert task.next_run == "2026-02-20T10:02:00.000Z"

    def test_update_missing_task(self, task_manager):
        with pytest.raises(ValueError, match="Task not found"):
            task_manager.update("missing", prompt="x")


class TestTaskLifecycle:
    def test_pause_and_resume(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Test", "once", "2099-01-01T00:00:00")
        assert task_manager.pause(task_id) is True
        assert task_manager.get_by_id(task_id).status == "paused"

        assert task_manager.resume(task_id) is True
        assert task_manager.get_by_id(task_id).status == "active"

    def test_resume_does_not_revive_completed_task(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Test", "once", "2020-01-01T00:00:00")
        task = task_manager.get_by_id(task_id)
        task_manager.complete_run(task, "2020-01-01T00:00:00.000Z", 10, "ok", None)
        assert task_manager.resume(task_id) is False
        assert task_manager.get_by_id(task_id).status == "completed"

    def test_cancel(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Test", "once", "2099-01-01T00:00:00")
        task_manager.cancel(task_id)
        assert task_manager.get_by_id(task_id) is None


class TestCompleteRun:
    def test_once_completes_after_success(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Once", "once", "2026-02-20T00:30:00", now=NOW)
        task = task_manager.get_by_id(task_id)
        log = task_manager.complete_run(task, "2026-02-20T10:00:00.000Z", 1500, "All done", None, now=NOW)

        assert log.status == "success"
        updated = task_manager.get_by_id(task_id)
        assert updated.status == "completed"
        assert updated.next_run is None
        assert updated.last_result == "All done"
        assert updated.last_run == "2026-02-20T10:00:00.000Z"

    def test_once_completes_after_error(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Once", "once", "2026-02-20T00:30:00", now=NOW)
        log = task_manager.complete_run(task_manager.get_by_id(task_id), "2026-02-20T10:00:00.000Z", 5, None, "boom")

        assert log.status == "error"
        updated = task_manager.get_by_id(task_id)
        assert updated.status == "completed"
        assert updated.last_result == "Error: boom"

    def test_interval_error_stays_active(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Tick", "interval", "3600000", now=NOW)
        task_manager.complete_run(task_manager.get_by_id(task_id), "2026-02-20T11:00:00.000Z", 5, None, "boom", now=NOW)

        updated = task_manager.get_by_id(task_id)
        assert updated.status == "active"
        assert updated.next_run == "2026-02-20T11:00:00.000Z"

    def test_long_result_is_summarised(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Tick", "interval", "60000", now=NOW)
        task_manager.complete_run(task_manager.get_by_id(task_id), "2026-02-20T10:01:00.000Z", 5, "x" * 500, None)
        updated = task_manager.get_by_id(task_id)
        assert updated.last_result == "x" * 200
        assert task_manager.get_run_logs(task_id)[0].result == "x" * 500

    def test_empty_result_summary(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Tick", "interval", "60000", now=NOW)
        task_manager.complete_run(task_manager.get_by_id(task_id), "2026-02-20T10:01:00.000Z", 5, None, None)
        assert task_manager.get_by_id(task_id).last_result == "Completed"

    def test_corrupt_recurrence_completes_task(self, db, task_manager):
        task_id = task_manager.create("main", "local:main", "Tick", "interval", "60000", now=NOW)
        db.db.execute("UPDATE scheduled_tasks SET schedule_value = 'garbage' WHERE id = ?", (task_id,))
        task_manager.complete_run(task_manager.get_by_id(task_id), "2026-02-20T10:01:00.000Z", 5, "ok", None)
        updated = task_manager.get_by_id(task_id)
        assert updated.status == "completed"
        assert updated.next_run is None


class TestTaskRetrieval:
    def test_get_all(self, task_manager):
        task_manager.create("main", "local:main", "Task 1", "once", "2099-01-01T00:00:00")
        task_manager.create("other", "local:other", "Task 2", "once", "2099-01-01T00:00:00")
        assert len(task_manager.get_all()) == 2

    def test_get_for_group(self, task_manager):
        task_manager.create("main", "local:main", "Task 1", "once", "2099-01-01T00:00:00")
        task_manager.create("other", "local:other", "Task 2", "once", "2099-01-01T00:00:00")
        main_tasks = task_manager.get_for_group("main")
        assert len(main_tasks) == 1
        assert main_tasks[0].prompt == "Task 1"

    def test_get_nonexistent(self, task_manager):
        assert task_manager.get_by_id("nonexistent") is None


class TestTaskAuthorization:
    def test_main_can_manage_any_task(self, task_manager):
        task_id = task_manager.create("other", "local:other", "Test", "once", "2099-01-01T00:00:00")
        assert task_manager.get_authorized(task_id, "main", is_main=True).id == task_id

    def test_non_main_can_manage_own_task(self, task_manager):
        task_id = task_manager.create("project-a", "local:a", "Test", "once", "2099-01-01T00:00:00")
        assert task_manager.get_authorized(task_id, "project-a", is_main=False).id == task_id

    def test_non_main_cannot_manage_other_task(self, task_manager):
        task_id = task_manager.create("project-a", "local:a", "Test", "once", "2099-01-01T00:00:00")
        with pytest.raises(PermissionError):
            task_manager.get_authorized(task_id, "project-b", is_main=False)

    def test_nonexistent_task_raises(self, task_manager):
        with pytest.raises(ValueError, match="Task not found"):
            task_manager.get_authorized("nonexistent", "main", is_main=True)


class TestDueTasks:
    def test_due_task_found(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Due", "once", "2020-01-01T00:00:00")
        assert any(t.id == task_id for t in task_manager.get_due_tasks())

    def test_future_task_not_due(self, task_manager):
        task_id = task_manager.create("main", "local:main", "Future", "once", "2099-01-01T00:00:00")
        assert not any(t.id == task_id for t in task_manager.get_due_tasks())
