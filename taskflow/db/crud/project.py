# taskflow/db/crud/project.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import joinedload
from typing import Optional, List, Tuple
from uuid import UUID
from datetime import datetime, timedelta, timezone
import secrets
from loguru import logger

from taskflow.core.config import settings
from taskflow.core.task_rules import as_utc
from taskflow.db.models import (
    Project, ProjectMember, Invitation, User, MemberRole, InvitationStatus
)
from taskflow.api.v1.schemas.projects import ProjectCreate, ProjectUpdate, InvitationCreate


async def get_project_by_uuid(db: AsyncSession, project_uuid: UUID) -> Optional[Project]:
    """Get project by UUID"""
    try:
        result = await db.execute(select(Project).filter(Project.uuid == project_uuid))
        return result.scalars().first()
    except Exception as e:
        logger.error(f"Error retrieving project by UUID {project_uuid}: {e}")
        return None


async def get_user_projects(db: AsyncSession, user_id: str) -> List[Tuple[Project, MemberRole]]:
    """Projects the user belongs to, newest first, with the user's role"""
    try:
        result = await db.execute(
            select(Project, ProjectMember.role)
            .join(ProjectMember, ProjectMember.project_id == Project.id)
            .filter(ProjectMember.user_id == user_id)
            .order_by(Project.created_at.desc(), Project.id.desc())
        )
        return [(project, role) for project, role in result.all()]
    except Exception as e:
        logger.error(f"Error retrieving projects for user {user_id}: {e}")
        return []


async def create_project(db: AsyncSession, project_data: ProjectCreate, creator_id: str) -> Project:
    """Create a project and add its creator as Admin"""
    try:
        project = Project(
            name=project_data.name,
            description=project_data.description,
            start_date=project_data.start_date,
            end_date=project_data.end_date,
            creator_id=creator_id
        )
        db.add(project)
        await db.flush()  # Get the ID without committing

        db.add(ProjectMember(project_id=project.id, user_id=creator_id, role=MemberRole.ADMIN))

        await db.commit()
        await db.refresh(project)

        logger.info(f"Project created: {project.name} by user {creator_id}")
        return project

    except Exception as e:
        logger.error(f"Failed to create project: {e}")
        await db.rollback()
        raise


async def update_project(db: AsyncSession, project: Project, updates: ProjectUpdate) -> Project:
    """Update project details"""
    try:
        update_data = updates.model_dump(exclude_unset=True)

        start = update_data.get("start_date", project.start_date)
        end = update_data.get("end_date", project.end_date)
        if start and end and as_utc(end) < as_utc(start):
            raise ValueError("end_date must not be before start_date")

        for field, value in update_data.items():
            setattr(project, field, value)

        await db.commit()
        await db.refresh(project)

        logger.info(f"Project {project.name} updated")
        return project

    except Exception as e:
        logger.error(f"Failed to update project {project.name}: {e}")
        await db.rollback()
        raise


async def get_project_members(db: AsyncSession, project_id: int) -> List[ProjectMember]:
    """Members of a project with their user rows loaded"""
    try:
        result = await db.execute(
            select(ProjectMember)
            .options(joinedload(ProjectMember.user))
            .filter(ProjectMember.project_id == project_id)
            .order_by(ProjectMember.joined_at.asc(), ProjectMember.id.asc())
        )
        return result.scalars().unique().all()
    except Exception as e:
        logger.error(f"Error retrieving members of project {project_id}: {e}")
        return []


async def create_invitation(
        db: AsyncSession,
        project: Project,
        invitation_data: InvitationCreate
) -> Invitation:
    """Create a pending invitation with a random redeem token"""
    try:
        invitation = Invitation(
            project_id=project.id,
            email=invitation_data.email.lower(),
            role=invitation_data.role,
            token=secrets.token_urlsafe(24),
            status=InvitationStatus.PENDING,
            expires_at=datetime.now(timezone.utc) + timedelta(days=settings.INVITATION_EXPIRE_DAYS)
        )
        db.add(invitation)
        await db.commit()
        await db.refresh(invitation)

        # Delivery of the email is left to the notification service
        logger.info(f"Invitation created for {invitation.email} to project {project.name}")
        return invitation

    except Exception as e:
        logger.error(f"Failed to create invitation: {e}")
        await db.rollback()
        raise


async def get_invitation_by_token(db: AsyncSession, token: str) -> Optional[Invitation]:
    try:
        result = await db.execute(
            select(Invitation)
            .options(joinedload(Invitation.project))
            .filter(Invitation.token == token)
        )
        return result.scalars().first()
    except Exception as e:
        logger.error(f"Error retrieving invitation: {e}")
        return None


async def accept_invitation(
        db: AsyncSession,
        invitation: Invitation,
        user: User,
        now: Optional[datetime] = None
) -> ProjectMember:
    """
    Redeem an invitation for the current user.

    Raises ValueError when the invitation is not pending, has expired or was
    issued to another email address.
    """
    now = now or datetime.now(timezone.utc)
    try:
        if invitation.status != InvitationStatus.PENDING:
            raise ValueError(f"Invitation is {invitation.status.value}")

        if as_utc(invitation.expires_at) < as_utc(now):
            invitation.status = InvitationStatus.EXPIRED
            await db.commit()
            raise ValueError("Invitation has expired")

        if invitation.email.lower() != user.email.lower():
            raise ValueError("Invitation was issued to a different email address")

        result = await db.execute(
            select(ProjectMember).filter(
                ProjectMember.project_id == invitation.project_id,
                ProjectMember.user_id == user.id
            )
        )
        membership = result.scalars().first()
        if membership is None:
            membership = ProjectMember(
                project_id=invitation.project_id,
                user_id=user.id,
                role=invitation.role
            )
            db.add(membership)

        invitation.status = InvitationStatus.ACCEPTED
        await db.commit()
        await db.refresh(membership)

        logger.info(f"User {user.email} joined project {invitation.project_id}")
        return membership

    except ValueError as e:
        logger.warning(f"Invitation not accepted: {e}")
        raise
    except Exception as e:
        logger.error(f"Failed to accept invitation: {e}")
        await db.rollback()
        raise
