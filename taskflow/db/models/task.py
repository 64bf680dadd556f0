# taskflow/db/models/task.py
"""Task, subtask and dependency models"""
from sqlalchemy import (
    Column, Integer, String, Text, Float, ForeignKey, Index, DateTime, CheckConstraint
)
from sqlalchemy.orm import relationship

from taskflow.db.models.base import Base, TimestampMixin, UUIDMixin, StringEnum
from taskflow.db.models.enums import TaskStatus, TaskPriority, TaskType, TimerStatus


class Task(Base, UUIDMixin, TimestampMixin):
    """Work item on a project board; big tasks may own small subtasks"""
    __tablename__ = "tasks"

    # Task fields
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True, default="")
    type = Column(StringEnum(TaskType), nullable=False, default=TaskType.SMALL)
    status = Column(StringEnum(TaskStatus), nullable=False, default=TaskStatus.TO_DO, index=True)
    priority = Column(StringEnum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    position = Column(Float, nullable=False, default=0.0)
    deadline = Column(DateTime(timezone=True), nullable=True)

    # Time tracking
    timer_status = Column(StringEnum(TimerStatus), nullable=False, default=TimerStatus.IDLE)
    timer_started_at = Column(DateTime(timezone=True), nullable=True)
    total_time_spent = Column(Integer, nullable=False, default=0)

    # Foreign keys
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True)
    assignee_id = Column(String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    creator_id = Column(String(64), ForeignKey("users.id"), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="tasks")
    parent = relationship("Task", remote_side="Task.id", back_populates="subtasks")
    subtasks = relationship("Task", back_populates="parent", passive_deletes=True)
    assignee = relationship("User", foreign_keys=[assignee_id])
    creator = relationship("User", foreign_keys=[creator_id])

    __table_args__ = (
        Index('idx_task_project_priority_position', 'project_id', 'priority', 'position'),
        Index('idx_task_parent', 'parent_id'),
        Index('idx_task_assignee_status', 'assignee_id', 'status'),
        CheckConstraint('total_time_spent >= 0', name='ck_task_total_time_non_negative'),
    )

    def __repr__(self):
        return f"<Task title={self.title} status={self.status}>"


class TaskDependency(Base):
    """Edge task -> blocked_by; both ends are deleted with their task"""
    __tablename__ = "task_dependencies"

    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    blocked_by_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)

    __table_args__ = (
        CheckConstraint('task_id != blocked_by_id', name='ck_task_dependency_no_self_loop'),
        Index('idx_task_dependency_blocked_by', 'blocked_by_id'),
    )

    def __repr__(self):
        return f"<TaskDependency task_id={self.task_id} blocked_by_id={self.blocked_by_id}>"
