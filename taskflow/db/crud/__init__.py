"""CRUD operations for database models"""
from .user import (
    get_user_by_id,
    sync_user_from_claims,
    get_membership,
    is_user_in_project
)
from . import user
from . import project
from . import task

__all__ = [
    # User CRUD
    "get_user_by_id",
    "sync_user_from_claims",
    "get_membership",
    "is_user_in_project",
    # Modules
    "user",
    "project",
    "task"
]
