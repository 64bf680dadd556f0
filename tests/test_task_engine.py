"""
Tests for the task engine: status sync, timers, positions and dependencies
"""
import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.db import crud
from taskflow.db.models import (
    Project, User, Task, TaskDependency, TaskStatus, TaskPriority, TaskType, TimerStatus
)
from taskflow.core.task_rules import as_utc
from taskflow.api.v1.schemas.tasks import TaskCreate, TaskUpdate

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


async def new_task(db, project, owner, title, now=T0, **fields):
    return await crud.task.create_task(
        db, TaskCreate(title=title, **fields), project_id=project.id, creator_id=owner.id, now=now
    )


@pytest.fixture
async def family(db_session: AsyncSession, project: Project, owner: User):
    """A big task with two To Do subtasks"""
    parent = await new_task(db_session, project, owner, "Release", type=TaskType.BIG)
    child_a = await new_task(db_session, project, owner, "Changelog", parent_id=parent.uuid)
    child_b = await new_task(db_session, project, owner, "Tag", parent_id=parent.uuid)
    return parent, child_a, child_b


class TestTaskCreation:

    async def test_positions_follow_priority_tiers(self, db_session, project, owner):
        first = await new_task(db_session, project, owner, "First")
        second = await new_task(db_session, project, owner, "Second")
        urgent = await new_task(db_session, project, owner, "Urgent", priority=TaskPriority.URGENT)

        assert first.position == 2000.0
        assert second.position == 2001.0
        assert urgent.position == 4000.0

    async def test_subtask_needs_big_parent(self, db_session, project, owner):
        small = await new_task(db_session, project, owner, "Small")
        with pytest.raises(ValueError):
            await new_task(db_session, project, owner, "Child", parent_id=small.uuid)

    async def test_subtasks_are_one_level_deep(self, db_session, project, owner, family):
        parent, child_a, _ = family
        with pytest.raises(ValueError):
            await new_task(db_session, project, owner, "Grandchild", parent_id=child_a.uuid)

    async def test_in_progress_subtask_starts_parent_and_timer(self, db_session, project, owner, family):
        parent = family[0]
        child = await new_task(
            db_session, project, owner, "Hotfix", parent_id=parent.uuid, status=TaskStatus.IN_PROGRESS
        )

        assert child.timer_status == TimerStatus.WORKING
        assert as_utc(child.timer_started_at) == T0
        refreshed = await crud.task.reload_task(db_session, parent.id)
        assert refreshed.status == TaskStatus.IN_PROGRESS


class TestStatusSync:

    async def test_done_accrues_working_time(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Write docs")
        task = await crud.task.set_task_status(db_session, task, TaskStatus.IN_PROGRESS, now=T0)
        task = await crud.task.set_task_status(
            db_session, task, TaskStatus.DONE, now=T0 + timedelta(seconds=90, milliseconds=500)
        )

        assert task.status == TaskStatus.DONE
        assert task.timer_status == TimerStatus.IDLE
        assert task.timer_started_at is None
        assert task.total_time_spent == 90

    async def test_repeated_in_progress_does_not_double_count(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Write docs")
        task = await crud.task.set_task_status(db_session, task, TaskStatus.IN_PROGRESS, now=T0)
        task = await crud.task.set_task_status(
            db_session, task, TaskStatus.IN_PROGRESS, now=T0 + timedelta(seconds=30)
        )

        assert as_utc(task.timer_started_at) == T0
        assert task.total_time_spent == 0

        task = await crud.task.set_task_status(
            db_session, task, TaskStatus.DONE, now=T0 + timedelta(seconds=60)
        )
        assert task.total_time_spent == 60

    async def test_break_time_is_not_tracked(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Write docs")
        task = await crud.task.set_task_status(db_session, task, TaskStatus.BREAK, now=T0)
        assert task.timer_status == TimerStatus.BREAK

        task = await crud.task.set_task_status(
            db_session, task, TaskStatus.TO_DO, now=T0 + timedelta(minutes=10)
        )
        assert task.timer_status == TimerStatus.IDLE
        assert task.total_time_spent == 0

    async def test_parent_follows_children(self, db_session, family):
        parent, child_a, child_b = family

        await crud.task.set_task_status(db_session, child_a, TaskStatus.DONE, now=T0)
        assert (await crud.task.reload_task(db_session, parent.id)).status == TaskStatus.IN_PROGRESS

        await crud.task.set_task_status(db_session, child_b, TaskStatus.DONE, now=T0)
        assert (await crud.task.reload_task(db_session, parent.id)).status == TaskStatus.DONE

        await crud.task.set_task_status(db_session, child_b, TaskStatus.TO_DO, now=T0)
        assert (await crud.task.reload_task(db_session, parent.id)).status == TaskStatus.IN_PROGRESS

    async def test_update_routes_status_through_engine(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Write docs")
        task = await crud.task.update_task(
            db_session, task, TaskUpdate(title="Write API docs", status=TaskStatus.IN_PROGRESS),
            editor_id=owner.id, now=T0
        )

        assert task.title == "Write API docs"
        assert task.timer_status == TimerStatus.WORKING

    async def test_update_rejects_null_title(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Write docs")
        with pytest.raises(ValueError):
            await crud.task.update_task(db_session, task, TaskUpdate(title=None), editor_id=owner.id)


class TestTimer:

    async def test_start_and_stop(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Review")
        task = await crud.task.start_timer(db_session, task, TimerStatus.WORKING, now=T0)
        task = await crud.task.stop_timer(db_session, task, now=T0 + timedelta(seconds=45))

        assert task.timer_status == TimerStatus.IDLE
        assert task.total_time_spent == 45

    async def test_switching_to_break_keeps_working_time(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Review")
        task = await crud.task.start_timer(db_session, task, TimerStatus.WORKING, now=T0)
        task = await crud.task.start_timer(
            db_session, task, TimerStatus.BREAK, now=T0 + timedelta(seconds=20)
        )
        task = await crud.task.stop_timer(db_session, task, now=T0 + timedelta(seconds=300))

        assert task.total_time_spent == 20

    async def test_stop_idle_timer_is_harmless(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Review")
        task = await crud.task.stop_timer(db_session, task, now=T0)

        assert task.timer_status == TimerStatus.IDLE
        assert task.total_time_spent == 0

    async def test_big_task_rollup_sums_subtasks(self, db_session, project, family):
        parent, child_a, child_b = family
        await crud.task.start_timer(db_session, child_a, TimerStatus.WORKING, now=T0)
        await crud.task.stop_timer(db_session, child_a, now=T0 + timedelta(seconds=30))
        await crud.task.start_timer(db_session, child_b, TimerStatus.WORKING, now=T0)
        await crud.task.stop_timer(db_session, child_b, now=T0 + timedelta(seconds=12))

        rollup = await crud.task.get_task_rollup(db_session, parent)
        assert rollup == {"subtask_count": 2, "subtasks_done": 0, "total_time": 42}

        rows = await crud.task.get_project_tasks(db_session, project.id, type_filter=TaskType.BIG)
        assert [(task.id, data["total_time"]) for task, data in rows] == [(parent.id, 42)]


class TestBoardMoves:

    async def test_drop_between_neighbours(self, db_session, project, owner):
        low = await new_task(db_session, project, owner, "Low", priority=TaskPriority.LOW)
        high = await new_task(db_session, project, owner, "High", priority=TaskPriority.HIGH)
        mover = await new_task(db_session, project, owner, "Mover")

        position = await crud.task.resolve_drop_position(db_session, mover, high.uuid, low.uuid)
        assert position == 2000.0

        top = await crud.task.resolve_drop_position(db_session, mover, None, high.uuid)
        assert top == 3010.0

        bottom = await crud.task.resolve_drop_position(db_session, mover, low.uuid, None)
        assert bottom == 990.0

    async def test_task_cannot_be_its_own_neighbour(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Alone")
        with pytest.raises(ValueError):
            await crud.task.resolve_drop_position(db_session, task, task.uuid, None)

    async def test_move_with_status_cascades(self, db_session, family):
        parent, child_a, child_b = family
        moved = await crud.task.reposition_task(
            db_session, parent, 5000.0, TaskStatus.IN_PROGRESS, now=T0
        )

        assert moved.position == 5000.0
        assert moved.status == TaskStatus.IN_PROGRESS
        for child in (child_a, child_b):
            refreshed = await crud.task.reload_task(db_session, child.id)
            assert refreshed.status == TaskStatus.IN_PROGRESS
            assert refreshed.timer_status == TimerStatus.WORKING

    async def test_board_order(self, db_session, project, owner):
        await new_task(db_session, project, owner, "Medium")
        await new_task(db_session, project, owner, "Urgent", priority=TaskPriority.URGENT)
        await new_task(db_session, project, owner, "Low", priority=TaskPriority.LOW)

        rows = await crud.task.get_project_tasks(db_session, project.id)
        assert [task.title for task, _ in rows] == ["Urgent", "Medium", "Low"]


class TestDependencies:

    async def test_dependency_blocks_once(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Deploy")
        blocker = await new_task(db_session, project, owner, "Migrate")

        task = await crud.task.add_dependency(db_session, task, blocker, now=T0)
        assert task.status == TaskStatus.BLOCKED

        await crud.task.set_task_status(db_session, blocker, TaskStatus.DONE, now=T0)
        assert (await crud.task.reload_task(db_session, task.id)).status == TaskStatus.BLOCKED

        blocked_by, blocking = await crud.task.get_task_dependencies(db_session, task)
        assert [t.id for t in blocked_by] == [blocker.id]
        assert blocking == []

    async def test_in_progress_task_stops_its_timer_when_blocked(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Deploy")
        blocker = await new_task(db_session, project, owner, "Migrate")
        await crud.task.set_task_status(db_session, task, TaskStatus.IN_PROGRESS, now=T0)

        task = await crud.task.add_dependency(db_session, task, blocker, now=T0 + timedelta(seconds=15))
        assert task.status == TaskStatus.BLOCKED
        assert task.timer_status == TimerStatus.IDLE
        assert task.total_time_spent == 15

    async def test_done_task_is_not_blocked(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Deploy", status=TaskStatus.DONE)
        blocker = await new_task(db_session, project, owner, "Migrate")

        task = await crud.task.add_dependency(db_session, task, blocker)
        assert task.status == TaskStatus.DONE

    async def test_duplicate_edge_is_noop(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Deploy")
        blocker = await new_task(db_session, project, owner, "Migrate")

        await crud.task.add_dependency(db_session, task, blocker)
        await crud.task.add_dependency(db_session, task, blocker)

        blocked_by, _ = await crud.task.get_task_dependencies(db_session, task)
        assert len(blocked_by) == 1

    async def test_edge_written_by_overlapping_request(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Deploy")
        blocker = await new_task(db_session, project, owner, "Migrate")

        # The other request commits the edge after this one loaded both tasks
        await db_session.execute(
            insert(TaskDependency).values(task_id=task.id, blocked_by_id=blocker.id)
        )
        await db_session.commit()

        task = await crud.task.add_dependency(db_session, task, blocker, now=T0)
        assert task.status == TaskStatus.BLOCKED

        blocked_by, _ = await crud.task.get_task_dependencies(db_session, task)
        assert [t.id for t in blocked_by] == [blocker.id]

    async def test_deleted_task_cannot_gain_dependency(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Deploy")
        blocker = await new_task(db_session, project, owner, "Migrate")

        await db_session.execute(delete(Task).where(Task.id == task.id))
        await db_session.commit()

        with pytest.raises(ValueError, match="no longer exists"):
            await crud.task.add_dependency(db_session, task, blocker, now=T0)

    async def test_self_dependency_rejected(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Deploy")
        with pytest.raises(ValueError):
            await crud.task.add_dependency(db_session, task, task)

    async def test_remove_keeps_status(self, db_session, project, owner):
        task = await new_task(db_session, project, owner, "Deploy")
        blocker = await new_task(db_session, project, owner, "Migrate")
        await crud.task.add_dependency(db_session, task, blocker)

        assert await crud.task.remove_dependency(db_session, task, blocker) is True
        assert await crud.task.remove_dependency(db_session, task, blocker) is False
        assert (await crud.task.reload_task(db_session, task.id)).status == TaskStatus.BLOCKED


class TestDeletion:

    async def test_deleting_child_rederives_parent(self, db_session, family):
        parent, child_a, child_b = family
        await crud.task.set_task_status(db_session, child_a, TaskStatus.DONE, now=T0)

        assert await crud.task.delete_task(db_session, child_b) is True
        assert (await crud.task.reload_task(db_session, parent.id)).status == TaskStatus.DONE

    async def test_deleting_parent_removes_subtasks(self, db_session, project, family):
        parent = family[0]
        assert await crud.task.delete_task(db_session, parent) is True

        rows = await crud.task.get_project_tasks(db_session, project.id)
        assert rows == []

    async def test_stats(self, db_session, project, family):
        _, child_a, _ = family
        await crud.task.set_task_status(db_session, child_a, TaskStatus.DONE, now=T0)

        stats = await crud.task.get_task_stats_by_project(db_session, project.id)
        assert stats["total"] == 3
        assert stats["done"] == 1
        assert stats["by_status"]["In Progress"] == 1
        assert stats["by_status"]["To Do"] == 1
