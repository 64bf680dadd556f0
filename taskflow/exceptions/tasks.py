# taskflow/exceptions/tasks.py
from fastapi import HTTPException, status


class ProjectNotFoundError(HTTPException):
    """Project does not exist"""
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found"
        )


class ProjectAccessDeniedError(HTTPException):
    """User is not a member of the project, or lacks the role"""
    def __init__(self, detail: str = "Access denied to this project"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class TaskNotFoundError(HTTPException):
    """Task does not exist"""
    def __init__(self, detail: str = "Task not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )


class InvitationNotFoundError(HTTPException):
    """Unknown invitation token"""
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invitation not found"
        )


class InvalidTaskOperation(HTTPException):
    """Request is well-formed but breaks a task rule"""
    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )
