# taskflow/db/models/__init__.py
"""
Database models package
Imports all models for easy access
"""

# Import base classes and mixins
from taskflow.db.models.base import Base, TimestampMixin, UUIDMixin

# Import all enums
from taskflow.db.models.enums import (
    TaskStatus, TaskPriority, TaskType, TimerStatus,
    ProjectStatus, MemberRole, InvitationStatus
)

# Import user model
from taskflow.db.models.auth import User

# Import project models
from taskflow.db.models.project import Project, ProjectMember, Invitation

# Import task models
from taskflow.db.models.task import Task, TaskDependency

# Export all models and enums
__all__ = [
    # Base classes
    'Base', 'TimestampMixin', 'UUIDMixin',

    # Enums
    'TaskStatus', 'TaskPriority', 'TaskType', 'TimerStatus',
    'ProjectStatus', 'MemberRole', 'InvitationStatus',

    # Users
    'User',

    # Projects
    'Project', 'ProjectMember', 'Invitation',

    # Tasks
    'Task', 'TaskDependency',
]
