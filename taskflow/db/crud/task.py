# taskflow/db/crud/task.py
"""
Task persistence and the status/timer/position engine.

Every mutating operation runs as one transaction: the task row is locked
while its timer is read and rewritten, the parent status is re-derived in the
same transaction, and a single commit publishes the result.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, case, delete
from sqlalchemy.orm import joinedload
from sqlalchemy.dialects import postgresql, sqlite
from typing import Optional, List, Dict, Tuple
from uuid import UUID
from datetime import datetime, timezone
from loguru import logger

from taskflow.core import metrics
from taskflow.core.config import settings
from taskflow.core.task_rules import (
    StatusDerivation, TimerAccounting, TimerState, PositionAssignment
)
from taskflow.db.models import (
    Task, TaskDependency, TaskStatus, TaskPriority, TaskType, TimerStatus
)
from taskflow.api.v1.schemas.tasks import TaskCreate, TaskUpdate


_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _utc_now(now: Optional[datetime] = None) -> datetime:
    return now or datetime.now(timezone.utc)


def _task_query():
    return select(Task).options(
        joinedload(Task.project),
        joinedload(Task.parent),
        joinedload(Task.assignee)
    )


async def get_task_by_uuid(db: AsyncSession, task_uuid: UUID) -> Optional[Task]:
    """Get task by UUID with project, parent and assignee loaded"""
    try:
        result = await db.execute(_task_query().filter(Task.uuid == task_uuid))
        return result.scalars().first()
    except Exception as e:
        logger.error(f"Error retrieving task by UUID {task_uuid}: {e}")
        return None


async def reload_task(db: AsyncSession, task_id: int) -> Task:
    """Fresh copy of a task after commit, relationships included"""
    result = await db.execute(
        _task_query()
        .filter(Task.id == task_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().one()


async def _lock_task(db: AsyncSession, task_id: int) -> Optional[Task]:
    """Re-read a task row under FOR UPDATE so timer accrual is not raced"""
    result = await db.execute(
        select(Task)
        .filter(Task.id == task_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


# ---------------------------------------------------------------------------
# Engine primitives (no commit; callers own the transaction)
# ---------------------------------------------------------------------------

def _timer_state(task: Task) -> TimerState:
    return TimerState(
        TimerStatus(task.timer_status or TimerStatus.IDLE),
        task.timer_started_at,
        task.total_time_spent or 0
    )


def _write_timer(task: Task, new_state: TimerState) -> None:
    old_state = _timer_state(task)
    session_closed = (
        old_state.timer_started_at is not None
        and (new_state.timer_started_at is None or new_state.timer_started_at != old_state.timer_started_at)
    )
    if session_closed:
        metrics.record_timer_close(
            old_state.timer_status,
            new_state.total_time_spent - old_state.total_time_spent
        )

    task.timer_status = new_state.timer_status
    task.timer_started_at = new_state.timer_started_at
    task.total_time_spent = new_state.total_time_spent


def _apply_status(task: Task, new_status: TaskStatus, now: datetime, origin: str) -> None:
    """Write a status together with the timer change it implies"""
    new_status = TaskStatus(new_status)
    _write_timer(task, TimerAccounting.for_status(_timer_state(task), new_status, now))
    task.status = new_status
    metrics.record_status(new_status, origin)


async def _sync_parent_status(db: AsyncSession, parent_id: Optional[int]) -> Optional[TaskStatus]:
    """Re-derive a parent's status from its direct children (one level only)"""
    if parent_id is None:
        return None

    await db.flush()
    result = await db.execute(select(Task.status).filter(Task.parent_id == parent_id))
    derived = StatusDerivation.derive_parent_status(result.scalars().all())
    if derived is None:
        return None

    parent = await _lock_task(db, parent_id)
    if parent is not None and parent.status != derived:
        parent.status = derived
        metrics.record_status(derived, "derived")
        logger.debug(f"Parent task {parent.id} derived status {derived.value}")
    return derived


async def _validate_parent(db: AsyncSession, parent_uuid: UUID, project_id: int) -> Task:
    parent = await get_task_by_uuid(db, parent_uuid)
    if parent is None or parent.project_id != project_id:
        raise ValueError("Parent task not found in this project")
    if parent.type != TaskType.BIG or parent.parent_id is not None:
        raise ValueError("Only top-level big tasks can own subtasks")
    return parent


async def next_position(db: AsyncSession, project_id: int, priority: TaskPriority) -> float:
    """Initial position: on top of the project's priority tier"""
    max_position = await db.scalar(
        select(func.max(Task.position)).filter(
            Task.project_id == project_id,
            Task.priority == priority
        )
    )
    return PositionAssignment.initial_position(max_position, priority)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _rollup_subquery(project_id: int):
    return (
        select(
            Task.parent_id.label("parent_id"),
            func.count(Task.id).label("subtask_count"),
            func.coalesce(func.sum(case((Task.status == TaskStatus.DONE, 1), else_=0)), 0).label("subtasks_done"),
            func.coalesce(func.sum(Task.total_time_spent), 0).label("total_time"),
        )
        .filter(Task.project_id == project_id, Task.parent_id.is_not(None))
        .group_by(Task.parent_id)
        .subquery()
    )


def _rollup_from_row(row) -> Dict[str, int]:
    return {
        "subtask_count": int(row.subtask_count or 0),
        "subtasks_done": int(row.subtasks_done or 0),
        "total_time": int(row.total_time or 0),
    }


async def get_project_tasks(
        db: AsyncSession,
        project_id: int,
        status_filter: Optional[TaskStatus] = None,
        type_filter: Optional[TaskType] = None,
        parent_id: Optional[int] = None,
        assignee_id: Optional[str] = None
) -> List[Tuple[Task, Dict[str, int]]]:
    """Board rows, highest position first, each with its subtask rollup"""
    try:
        rollup = _rollup_subquery(project_id)
        query = (
            _task_query()
            .add_columns(rollup.c.subtask_count, rollup.c.subtasks_done, rollup.c.total_time)
            .outerjoin(rollup, rollup.c.parent_id == Task.id)
            .filter(Task.project_id == project_id)
        )

        if status_filter:
            query = query.filter(Task.status == status_filter)
        if type_filter:
            query = query.filter(Task.type == type_filter)
        if parent_id is not None:
            query = query.filter(Task.parent_id == parent_id)
        if assignee_id is not None:
            if assignee_id == "":  # Unassigned tasks
                query = query.filter(Task.assignee_id.is_(None))
            else:
                query = query.filter(Task.assignee_id == assignee_id)

        query = query.order_by(Task.position.desc(), Task.created_at.desc(), Task.id.desc())

        result = await db.execute(query)
        return [(row[0], _rollup_from_row(row)) for row in result.unique().all()]

    except Exception as e:
        logger.error(f"Error retrieving project tasks: {e}")
        return []


async def get_task_rollup(db: AsyncSession, task: Task) -> Dict[str, int]:
    """Subtask count, done count and tracked time of a task's children"""
    result = await db.execute(
        select(
            func.count(Task.id).label("subtask_count"),
            func.coalesce(func.sum(case((Task.status == TaskStatus.DONE, 1), else_=0)), 0).label("subtasks_done"),
            func.coalesce(func.sum(Task.total_time_spent), 0).label("total_time"),
        ).filter(Task.parent_id == task.id)
    )
    return _rollup_from_row(result.one())


async def get_task_dependencies(db: AsyncSession, task: Task) -> Tuple[List[Task], List[Task]]:
    """(tasks blocking this one, tasks this one blocks)"""
    blocked_by = await db.execute(
        select(Task)
        .join(TaskDependency, TaskDependency.blocked_by_id == Task.id)
        .filter(TaskDependency.task_id == task.id)
        .order_by(Task.title)
    )
    blocking = await db.execute(
        select(Task)
        .join(TaskDependency, TaskDependency.task_id == Task.id)
        .filter(TaskDependency.blocked_by_id == task.id)
        .order_by(Task.title)
    )
    return blocked_by.scalars().all(), blocking.scalars().all()


async def get_task_stats_by_project(db: AsyncSession, project_id: int) -> Dict[str, object]:
    """Counts per status and tracked time for a project"""
    try:
        result = await db.execute(
            select(Task.status, func.count(Task.id))
            .filter(Task.project_id == project_id)
            .group_by(Task.status)
        )
        by_status = {status.value: 0 for status in TaskStatus}
        for status, count in result.all():
            by_status[TaskStatus(status).value] = count

        total_time = await db.scalar(
            select(func.coalesce(func.sum(Task.total_time_spent), 0))
            .filter(Task.project_id == project_id)
        )

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "done": by_status[TaskStatus.DONE.value],
            "total_time_spent": int(total_time or 0)
        }

    except Exception as e:
        logger.error(f"Error getting task stats for project {project_id}: {e}")
        return {"total": 0, "by_status": {}, "done": 0, "total_time_spent": 0}


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_task(
        db: AsyncSession,
        task_data: TaskCreate,
        project_id: int,
        creator_id: str,
        now: Optional[datetime] = None
) -> Task:
    """Create a task on top of its priority tier and re-derive its parent"""
    now = _utc_now(now)
    try:
        parent = None
        if task_data.parent_id is not None:
            parent = await _validate_parent(db, task_data.parent_id, project_id)

        task = Task(
            title=task_data.title,
            description=task_data.description or "",
            type=task_data.type,
            status=TaskStatus.TO_DO,
            priority=task_data.priority,
            position=await next_position(db, project_id, task_data.priority),
            deadline=task_data.deadline,
            project_id=project_id,
            parent_id=parent.id if parent else None,
            assignee_id=task_data.assignee_id,
            creator_id=creator_id,
            timer_status=TimerStatus.IDLE,
            timer_started_at=None,
            total_time_spent=0
        )
        _apply_status(task, task_data.status, now, "created")

        db.add(task)
        await db.flush()
        await _sync_parent_status(db, task.parent_id)
        await db.commit()

        logger.info(f"Task created: {task.title} in project {project_id} by user {creator_id}")
        return await reload_task(db, task.id)

    except Exception as e:
        logger.error(f"Failed to create task: {e}")
        await db.rollback()
        raise


async def set_task_status(
        db: AsyncSession,
        task: Task,
        new_status: TaskStatus,
        now: Optional[datetime] = None,
        origin: str = "user"
) -> Task:
    """Write a status with its timer change and re-derive the parent"""
    now = _utc_now(now)
    try:
        locked = await _lock_task(db, task.id)
        if locked is None:
            raise ValueError("Task no longer exists")

        _apply_status(locked, new_status, now, origin)
        await _sync_parent_status(db, locked.parent_id)
        await db.commit()

        logger.info(f"Task {locked.id} status set to {TaskStatus(new_status).value}")
        return await reload_task(db, locked.id)

    except Exception as e:
        logger.error(f"Failed to update status of task {task.id}: {e}")
        await db.rollback()
        raise


async def update_task(
        db: AsyncSession,
        task: Task,
        updates: TaskUpdate,
        editor_id: str,
        now: Optional[datetime] = None
) -> Task:
    """Update task details; a status in the payload goes through the status engine"""
    now = _utc_now(now)
    try:
        update_data = updates.model_dump(exclude_unset=True)
        new_status = update_data.pop("status", None)

        locked = await _lock_task(db, task.id)
        if locked is None:
            raise ValueError("Task no longer exists")

        for field, value in update_data.items():
            if field == "title" and value is None:
                raise ValueError("title cannot be null")
            if field == "priority" and value is None:
                raise ValueError("priority cannot be null")
            setattr(locked, field, value)

        if new_status is not None:
            _apply_status(locked, new_status, now, "user")
            await _sync_parent_status(db, locked.parent_id)

        await db.commit()

        logger.info(f"Task {locked.title} updated by user {editor_id}")
        return await reload_task(db, locked.id)

    except Exception as e:
        logger.error(f"Failed to update task {task.id}: {e}")
        await db.rollback()
        raise


async def delete_task(db: AsyncSession, task: Task) -> bool:
    """Hard delete; the store cascades to subtasks and dependency edges"""
    try:
        parent_id = task.parent_id
        await db.execute(delete(Task).where(Task.id == task.id))
        await _sync_parent_status(db, parent_id)
        await db.commit()
        logger.info(f"Task {task.title} deleted")
        return True

    except Exception as e:
        logger.error(f"Failed to delete task {task.title}: {e}")
        await db.rollback()
        return False


async def start_timer(
        db: AsyncSession,
        task: Task,
        mode: TimerStatus,
        now: Optional[datetime] = None
) -> Task:
    """Open a working or break session"""
    now = _utc_now(now)
    try:
        locked = await _lock_task(db, task.id)
        if locked is None:
            raise ValueError("Task no longer exists")

        _write_timer(locked, TimerAccounting.start(_timer_state(locked), mode, now))
        await db.commit()

        logger.info(f"Timer started on task {locked.id} in {TimerStatus(mode).value} mode")
        return await reload_task(db, locked.id)

    except Exception as e:
        logger.error(f"Failed to start timer on task {task.id}: {e}")
        await db.rollback()
        raise


async def stop_timer(db: AsyncSession, task: Task, now: Optional[datetime] = None) -> Task:
    """Close the running session; only working time is added to the total"""
    now = _utc_now(now)
    try:
        locked = await _lock_task(db, task.id)
        if locked is None:
            raise ValueError("Task no longer exists")

        before = locked.total_time_spent or 0
        _write_timer(locked, TimerAccounting.stop(_timer_state(locked), now))
        await db.commit()

        logger.info(f"Timer stopped on task {locked.id}, accrued {locked.total_time_spent - before}s")
        return await reload_task(db, locked.id)

    except Exception as e:
        logger.error(f"Failed to stop timer on task {task.id}: {e}")
        await db.rollback()
        raise


async def resolve_drop_position(
        db: AsyncSession,
        task: Task,
        above_uuid: Optional[UUID],
        below_uuid: Optional[UUID]
) -> float:
    """Position for a drop between two neighbours of the same project"""
    neighbours = {}
    for key, neighbour_uuid in (("above", above_uuid), ("below", below_uuid)):
        if neighbour_uuid is None:
            neighbours[key] = None
            continue
        neighbour = await get_task_by_uuid(db, neighbour_uuid)
        if neighbour is None or neighbour.project_id != task.project_id:
            raise ValueError(f"Neighbour task {neighbour_uuid} not found in this project")
        if neighbour.id == task.id:
            raise ValueError("A task cannot be its own neighbour")
        neighbours[key] = neighbour.position

    return PositionAssignment.position_between(
        neighbours["above"],
        neighbours["below"],
        default=TaskPriority(task.priority).base_weight,
        gap=settings.POSITION_EDGE_GAP
    )


async def reposition_task(
        db: AsyncSession,
        task: Task,
        new_position: float,
        new_status: Optional[TaskStatus] = None,
        now: Optional[datetime] = None
) -> Task:
    """
    Move a task on the board.

    With a status the move also changes column: the task's status and timer
    change, every subtask follows the new status (top-down), and the task's
    own parent is re-derived.
    """
    now = _utc_now(now)
    try:
        locked = await _lock_task(db, task.id)
        if locked is None:
            raise ValueError("Task no longer exists")

        locked.position = new_position

        if new_status is not None:
            _apply_status(locked, new_status, now, "board")

            result = await db.execute(
                select(Task)
                .filter(Task.parent_id == locked.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            for subtask in result.scalars().all():
                _apply_status(subtask, new_status, now, "cascade")

            await _sync_parent_status(db, locked.parent_id)

        await db.commit()

        logger.info(f"Task {locked.id} moved to position {new_position}")
        return await reload_task(db, locked.id)

    except Exception as e:
        logger.error(f"Failed to reposition task {task.id}: {e}")
        await db.rollback()
        raise


async def add_dependency(
        db: AsyncSession,
        task: Task,
        blocked_by: Task,
        now: Optional[datetime] = None
) -> Task:
    """
    Record that `task` is blocked by `blocked_by`.

    Inserting the edge blocks a To Do or In Progress task once; the status is
    not re-evaluated when the blocking task completes.
    """
    now = _utc_now(now)
    try:
        if task.id == blocked_by.id:
            raise ValueError("A task cannot depend on itself")
        if task.project_id != blocked_by.project_id:
            raise ValueError("Dependencies must stay within one project")

        locked = await _lock_task(db, task.id)
        if locked is None:
            raise ValueError("Task no longer exists")

        # Duplicate edges are a no-op
        insert_edge = _UPSERT_INSERTS[db.get_bind().dialect.name]
        await db.execute(
            insert_edge(TaskDependency)
            .values(task_id=task.id, blocked_by_id=blocked_by.id)
            .on_conflict_do_nothing(index_elements=["task_id", "blocked_by_id"])
        )

        if locked.status in (TaskStatus.TO_DO, TaskStatus.IN_PROGRESS):
            _apply_status(locked, TaskStatus.BLOCKED, now, "dependency")
            await _sync_parent_status(db, locked.parent_id)

        await db.commit()

        logger.info(f"Task {task.id} now blocked by task {blocked_by.id}")
        return await reload_task(db, task.id)

    except Exception as e:
        logger.error(f"Failed to add dependency {task.id} -> {blocked_by.id}: {e}")
        await db.rollback()
        raise


async def remove_dependency(db: AsyncSession, task: Task, blocked_by: Task) -> bool:
    """Delete the edge; the task's status is left as it is"""
    try:
        result = await db.execute(
            delete(TaskDependency).where(
                TaskDependency.task_id == task.id,
                TaskDependency.blocked_by_id == blocked_by.id
            )
        )
        await db.commit()
        removed = result.rowcount > 0
        logger.info(f"Dependency {task.id} -> {blocked_by.id} removed: {removed}")
        return removed

    except Exception as e:
        logger.error(f"Failed to remove dependency {task.id} -> {blocked_by.id}: {e}")
        await db.rollback()
        raise


async def assign_task(db: AsyncSession, task: Task, assignee_id: Optional[str]) -> Task:
    """Set or clear the assignee"""
    try:
        locked = await _lock_task(db, task.id)
        if locked is None:
            raise ValueError("Task no longer exists")

        locked.assignee_id = assignee_id
        await db.commit()

        logger.info(f"Task {locked.id} assigned to {assignee_id or 'nobody'}")
        return await reload_task(db, locked.id)

    except Exception as e:
        logger.error(f"Failed to assign task {task.id}: {e}")
        await db.rollback()
        raise
