# taskflow/api/v1/schemas/tasks.py
from pydantic import BaseModel, Field, UUID4, field_validator, computed_field
from typing import Optional, List, Dict
from datetime import datetime

from taskflow.db.models.enums import TaskStatus, TaskPriority, TaskType, TimerStatus
from taskflow.api.v1.schemas.users import UserSummary


class TaskBase(BaseModel):
    """Base schema for task"""
    title: str = Field(..., min_length=1, max_length=500, description="Task title")
    description: Optional[str] = Field("", description="Task description")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Priority tier")
    type: TaskType = Field(TaskType.SMALL, description="big tasks may own subtasks")
    deadline: Optional[datetime] = Field(None, description="Deadline for the task")


class TaskCreate(TaskBase):
    """Schema for creating a task"""
    status: TaskStatus = Field(TaskStatus.TO_DO, description="Initial status")
    parent_id: Optional[UUID4] = Field(None, description="UUID of the owning big task")
    assignee_id: Optional[str] = Field(None, description="User id of the assignee")


class TaskUpdate(BaseModel):
    """Schema for updating a task; status changes go through the status engine"""
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    deadline: Optional[datetime] = None
    assignee_id: Optional[str] = Field(None, description="User id of the assignee (null to unassign)")


class TaskResponse(TaskBase):
    """Schema for task response with UUIDs and time tracking"""
    id: UUID4 = Field(..., description="Task UUID")
    project_id: UUID4 = Field(..., description="Project UUID")
    parent_id: Optional[UUID4] = Field(None, description="Parent task UUID")
    status: TaskStatus
    position: float
    assignee: Optional[UserSummary] = None
    creator_id: str
    timer_status: TimerStatus
    timer_started_at: Optional[datetime] = None
    total_time_spent: int = Field(..., description="Tracked seconds; summed over subtasks for big tasks")
    subtask_count: int = 0
    subtasks_done: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, task, rollup: Optional[Dict[str, int]] = None):
        """Convert Task model (with project, parent and assignee loaded) to API response"""
        rollup = rollup or {}
        if task.type == TaskType.BIG:
            total_time = rollup.get("total_time", 0)
        else:
            total_time = task.total_time_spent or 0

        return cls(
            id=task.uuid,
            project_id=task.project.uuid,
            parent_id=task.parent.uuid if task.parent else None,
            title=task.title,
            description=task.description,
            type=task.type,
            status=task.status,
            priority=task.priority,
            position=task.position,
            deadline=task.deadline,
            assignee=UserSummary.model_validate(task.assignee) if task.assignee else None,
            creator_id=task.creator_id,
            timer_status=task.timer_status,
            timer_started_at=task.timer_started_at,
            total_time_spent=total_time,
            subtask_count=rollup.get("subtask_count", 0),
            subtasks_done=rollup.get("subtasks_done", 0),
            created_at=task.created_at,
            updated_at=task.updated_at
        )


class TaskLink(BaseModel):
    """Lightweight view of a task on the other end of a dependency"""
    id: UUID4
    title: str
    status: TaskStatus

    @classmethod
    def from_model(cls, task):
        return cls(id=task.uuid, title=task.title, status=task.status)


class TaskDetail(TaskResponse):
    """Task with its dependency edges in both directions"""
    blocked_by: List[TaskLink] = Field(default_factory=list)
    blocking: List[TaskLink] = Field(default_factory=list)


class TaskStatusUpdate(BaseModel):
    """Schema for updating task status"""
    status: TaskStatus = Field(..., description="New task status")


class TaskPositionUpdate(BaseModel):
    """
    Drop of a task on the board.

    Either an explicit position, or the UUIDs of the neighbours the task was
    dropped between (above has the higher position). A status moves the task
    to another column.
    """
    position: Optional[float] = Field(None, description="Explicit new position")
    above_id: Optional[UUID4] = Field(None, description="Task rendered above the drop slot")
    below_id: Optional[UUID4] = Field(None, description="Task rendered below the drop slot")
    status: Optional[TaskStatus] = Field(None, description="Target column status")


class TimerStart(BaseModel):
    """Schema for starting a timer session"""
    mode: TimerStatus = Field(TimerStatus.WORKING, description="working or break")

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v):
        if v == TimerStatus.IDLE:
            raise ValueError("Timer mode must be 'working' or 'break'")
        return v


class DependencyCreate(BaseModel):
    """Schema for adding a blocked-by edge"""
    blocked_by_id: UUID4 = Field(..., description="UUID of the blocking task")


class TaskAssign(BaseModel):
    """Schema for assigning a task; null clears the assignee"""
    assignee_id: Optional[str] = Field(None, description="User id of the assignee")


class TaskStats(BaseModel):
    """Task statistics for a project"""
    total: int = Field(..., description="Total number of tasks")
    by_status: Dict[str, int] = Field(..., description="Task count per status")
    done: int = Field(..., description="Number of done tasks")
    total_time_spent: int = Field(..., description="Tracked seconds across all tasks")

    @computed_field
    @property
    def completion_percentage(self) -> float:
        """Calculate completion percentage"""
        if self.total == 0:
            return 0.0
        return (self.done / self.total) * 100
