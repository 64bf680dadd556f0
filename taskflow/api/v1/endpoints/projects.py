# taskflow/api/v1/endpoints/projects.py
"""Project, membership and invitation endpoints"""
from fastapi import APIRouter, Depends, HTTPException, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID
from loguru import logger

from taskflow.db.database import get_db
from taskflow.db import crud
from taskflow.db.models import User, Project
from taskflow.api.v1.schemas.projects import (
    ProjectCreate, ProjectUpdate, ProjectResponse, ProjectMemberResponse,
    InvitationCreate, InvitationResponse
)
from taskflow.auth.dependencies import (
    get_current_user, get_member_project, get_admin_project, resolve_project_access
)
from taskflow.exceptions.tasks import InvitationNotFoundError

router = APIRouter()
invitations_router = APIRouter()


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a project; the creator becomes its Admin"""
    try:
        project = await crud.project.create_project(db, project_data, creator_id=current_user.id)
        return ProjectResponse.from_model(project, role="Admin")

    except Exception as e:
        logger.error(f"Failed to create project: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create project"
        )


@router.get("", response_model=List[ProjectResponse])
async def list_my_projects(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Projects the current user is a member of, newest first"""
    rows = await crud.project.get_user_projects(db, current_user.id)
    return [ProjectResponse.from_model(project, role=role) for project, role in rows]


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: UUID = Path(..., description="Project UUID"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a project with the current user's role"""
    project, membership = await resolve_project_access(db, project_id, current_user)
    return ProjectResponse.from_model(project, role=membership.role)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    updates: ProjectUpdate,
    project: Project = Depends(get_admin_project),
    db: AsyncSession = Depends(get_db)
):
    """Update project details (Admin only)"""
    try:
        project = await crud.project.update_project(db, project, updates)
        return ProjectResponse.from_model(project, role="Admin")

    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update project {project.uuid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update project"
        )


@router.get("/{project_id}/members", response_model=List[ProjectMemberResponse])
async def list_project_members(
    project: Project = Depends(get_member_project),
    db: AsyncSession = Depends(get_db)
):
    """List the members of a project"""
    members = await crud.project.get_project_members(db, project.id)
    return [ProjectMemberResponse.from_model(member) for member in members]


@router.post(
    "/{project_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED
)
async def invite_user(
    invitation_data: InvitationCreate,
    project: Project = Depends(get_admin_project),
    db: AsyncSession = Depends(get_db)
):
    """Invite someone to the project by email (Admin only)"""
    try:
        invitation = await crud.project.create_invitation(db, project, invitation_data)
        return InvitationResponse.from_model(invitation, project.uuid)

    except Exception as e:
        logger.error(f"Failed to invite {invitation_data.email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send invitation"
        )


@invitations_router.post("/{token}/accept", response_model=ProjectResponse)
async def accept_invitation(
    token: str = Path(..., min_length=8, max_length=64),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Join the invitation's project as the current user"""
    invitation = await crud.project.get_invitation_by_token(db, token)
    if not invitation:
        raise InvitationNotFoundError()

    try:
        membership = await crud.project.accept_invitation(db, invitation, current_user)
        return ProjectResponse.from_model(invitation.project, role=membership.role)

    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to accept invitation: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to accept invitation"
        )
