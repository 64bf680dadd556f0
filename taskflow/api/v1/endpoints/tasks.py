# taskflow/api/v1/endpoints/tasks.py
"""Task management endpoints: board, status, timer, ordering and dependencies"""
from fastapi import APIRouter, Depends, HTTPException, Query, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
from loguru import logger

from taskflow.db.database import get_db
from taskflow.db import crud
from taskflow.db.models import User, Project, Task, TaskStatus, TaskType
from taskflow.api.v1.schemas.tasks import (
    TaskCreate, TaskUpdate, TaskResponse, TaskDetail, TaskLink, TaskStatusUpdate,
    TaskPositionUpdate, TimerStart, DependencyCreate, TaskAssign, TaskStats
)
from taskflow.auth.dependencies import get_current_user, get_member_project
from taskflow.exceptions.tasks import (
    TaskNotFoundError, ProjectAccessDeniedError, InvalidTaskOperation
)

router = APIRouter()


async def get_accessible_task(
    task_id: UUID = Path(..., description="Task UUID"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> Task:
    """Task in the path, if the current user is a member of its project"""
    task = await crud.task.get_task_by_uuid(db, task_id)
    if not task:
        raise TaskNotFoundError()

    if not await crud.user.is_user_in_project(db, current_user.id, task.project_id):
        raise ProjectAccessDeniedError("Access denied to this task")

    return task


async def _ensure_assignable(db: AsyncSession, project_id: int, assignee_id: Optional[str]) -> None:
    if assignee_id and not await crud.user.is_user_in_project(db, assignee_id, project_id):
        raise InvalidTaskOperation("Assignee must be a member of the project")


async def _task_response(db: AsyncSession, task: Task) -> TaskResponse:
    rollup = await crud.task.get_task_rollup(db, task)
    return TaskResponse.from_model(task, rollup)


@router.post(
    "/projects/{project_id}/tasks",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_task(
    task_data: TaskCreate,
    project: Project = Depends(get_member_project),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a task; a subtask re-derives its parent's status"""
    try:
        await _ensure_assignable(db, project.id, task_data.assignee_id)

        task = await crud.task.create_task(
            db=db,
            task_data=task_data,
            project_id=project.id,
            creator_id=current_user.id
        )
        return await _task_response(db, task)

    except HTTPException:
        raise
    except ValueError as e:
        raise InvalidTaskOperation(str(e))
    except Exception as e:
        logger.error(f"Failed to create task: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create task"
        )


@router.get("/projects/{project_id}/tasks", response_model=List[TaskResponse])
async def list_project_tasks(
    project: Project = Depends(get_member_project),
    status_filter: Optional[TaskStatus] = Query(None, alias="status", description="Filter by task status"),
    type_filter: Optional[TaskType] = Query(None, alias="type", description="Filter by task type"),
    parent_id: Optional[UUID] = Query(None, description="Only subtasks of this task"),
    assignee_id: Optional[str] = Query(None, description="Filter by assignee; empty for unassigned"),
    db: AsyncSession = Depends(get_db)
):
    """Board rows ordered by position (highest first) with subtask rollups"""
    internal_parent_id = None
    if parent_id is not None:
        parent = await crud.task.get_task_by_uuid(db, parent_id)
        if not parent or parent.project_id != project.id:
            raise TaskNotFoundError("Parent task not found")
        internal_parent_id = parent.id

    rows = await crud.task.get_project_tasks(
        db=db,
        project_id=project.id,
        status_filter=status_filter,
        type_filter=type_filter,
        parent_id=internal_parent_id,
        assignee_id=assignee_id
    )
    return [TaskResponse.from_model(task, rollup) for task, rollup in rows]


@router.get("/projects/{project_id}/tasks/stats", response_model=TaskStats)
async def get_project_task_stats(
    project: Project = Depends(get_member_project),
    db: AsyncSession = Depends(get_db)
):
    """Task statistics for a project"""
    stats = await crud.task.get_task_stats_by_project(db, project.id)
    return TaskStats(**stats)


@router.get("/tasks/{task_id}", response_model=TaskDetail)
async def get_task(
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Get a task with the tasks blocking it and the tasks it blocks"""
    response = await _task_response(db, task)
    blocked_by, blocking = await crud.task.get_task_dependencies(db, task)
    return TaskDetail(
        **response.model_dump(),
        blocked_by=[TaskLink.from_model(t) for t in blocked_by],
        blocking=[TaskLink.from_model(t) for t in blocking]
    )


@router.put("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    updates: TaskUpdate,
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update a task"""
    try:
        if "assignee_id" in updates.model_fields_set:
            await _ensure_assignable(db, task.project_id, updates.assignee_id)

        updated_task = await crud.task.update_task(
            db=db,
            task=task,
            updates=updates,
            editor_id=current_user.id
        )
        return await _task_response(db, updated_task)

    except HTTPException:
        raise
    except ValueError as e:
        raise InvalidTaskOperation(str(e))
    except Exception as e:
        logger.error(f"Failed to update task {task.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update task"
        )


@router.patch("/tasks/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    status_update: TaskStatusUpdate,
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Set the status; starts or stops the timer and re-derives the parent"""
    try:
        updated_task = await crud.task.set_task_status(db, task, status_update.status)
        return await _task_response(db, updated_task)

    except ValueError as e:
        raise InvalidTaskOperation(str(e))
    except Exception as e:
        logger.error(f"Failed to update task status {task.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update task status"
        )


@router.patch("/tasks/{task_id}/position", response_model=TaskResponse)
async def update_task_position(
    move: TaskPositionUpdate,
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Drop a task on the board, optionally into another status column"""
    try:
        if move.position is not None:
            new_position = move.position
        else:
            new_position = await crud.task.resolve_drop_position(db, task, move.above_id, move.below_id)

        updated_task = await crud.task.reposition_task(db, task, new_position, move.status)
        return await _task_response(db, updated_task)

    except ValueError as e:
        raise InvalidTaskOperation(str(e))
    except Exception as e:
        logger.error(f"Failed to reposition task {task.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reposition task"
        )


@router.patch("/tasks/{task_id}/assignee", response_model=TaskResponse)
async def assign_task(
    assignment: TaskAssign,
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Set or clear the assignee"""
    await _ensure_assignable(db, task.project_id, assignment.assignee_id)
    try:
        updated_task = await crud.task.assign_task(db, task, assignment.assignee_id)
        return await _task_response(db, updated_task)

    except ValueError as e:
        raise InvalidTaskOperation(str(e))
    except Exception as e:
        logger.error(f"Failed to assign task {task.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign task"
        )


@router.post("/tasks/{task_id}/timer/start", response_model=TaskResponse)
async def start_task_timer(
    timer: TimerStart,
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Start a working or break session"""
    try:
        updated_task = await crud.task.start_timer(db, task, timer.mode)
        return await _task_response(db, updated_task)

    except ValueError as e:
        raise InvalidTaskOperation(str(e))
    except Exception as e:
        logger.error(f"Failed to start timer on task {task.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start timer"
        )


@router.post("/tasks/{task_id}/timer/stop", response_model=TaskResponse)
async def stop_task_timer(
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Stop the running session; an idle timer is left idle"""
    try:
        updated_task = await crud.task.stop_timer(db, task)
        return await _task_response(db, updated_task)

    except ValueError as e:
        raise InvalidTaskOperation(str(e))
    except Exception as e:
        logger.error(f"Failed to stop timer on task {task.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to stop timer"
        )


@router.post(
    "/tasks/{task_id}/dependencies",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_task_dependency(
    dependency: DependencyCreate,
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Mark the task as blocked by another task of the same project"""
    blocked_by = await crud.task.get_task_by_uuid(db, dependency.blocked_by_id)
    if not blocked_by:
        raise TaskNotFoundError("Blocking task not found")

    try:
        updated_task = await crud.task.add_dependency(db, task, blocked_by)
        return await _task_response(db, updated_task)

    except ValueError as e:
        raise InvalidTaskOperation(str(e))
    except Exception as e:
        logger.error(f"Failed to add dependency on task {task.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add dependency"
        )


@router.delete("/tasks/{task_id}/dependencies/{blocked_by_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_task_dependency(
    blocked_by_id: UUID,
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Remove a blocked-by edge; the task keeps its current status"""
    blocked_by = await crud.task.get_task_by_uuid(db, blocked_by_id)
    if not blocked_by:
        raise TaskNotFoundError("Blocking task not found")

    try:
        removed = await crud.task.remove_dependency(db, task, blocked_by)
    except Exception as e:
        logger.error(f"Failed to remove dependency on task {task.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove dependency"
        )

    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dependency not found")


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task: Task = Depends(get_accessible_task),
    db: AsyncSession = Depends(get_db)
):
    """Delete a task and its subtasks"""
    success = await crud.task.delete_task(db, task)
    if not success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete task"
        )
