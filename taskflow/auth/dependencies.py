# taskflow/auth/dependencies.py - Identity and project access dependencies
from fastapi import Depends, Path
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from jose import ExpiredSignatureError, JWTError
from uuid import UUID
from typing import Optional, Tuple
from loguru import logger

from taskflow.db.database import get_db
from taskflow.auth.security import decode_token, has_identity_claims
from taskflow.db.crud.user import sync_user_from_claims, get_membership
from taskflow.db.crud.project import get_project_by_uuid
from taskflow.db.models import User, Project, ProjectMember, MemberRole
from taskflow.exceptions.auth import AuthenticationError, TokenExpiredError, MissingIdentityClaimsError
from taskflow.exceptions.tasks import ProjectNotFoundError, ProjectAccessDeniedError

# Tokens are issued by the external auth provider
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
        db: AsyncSession = Depends(get_db),
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> User:
    """
    Resolve the acting user from the provider's bearer token.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()

    try:
        payload = decode_token(credentials.credentials)
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise AuthenticationError()

    if not has_identity_claims(payload):
        logger.warning("Invalid token payload - missing sub or email")
        raise MissingIdentityClaimsError()

    user = await sync_user_from_claims(
        db,
        user_id=str(payload["sub"]),
        email=payload["email"],
        name=payload.get("name"),
        image=payload.get("picture")
    )
    logger.debug(f"User authenticated | user_id={user.id}")
    return user


async def resolve_project_access(db: AsyncSession, project_uuid: UUID, user: User) -> Tuple[Project, ProjectMember]:
    """Project by UUID plus the user's membership in it"""
    project = await get_project_by_uuid(db, project_uuid)
    if not project:
        raise ProjectNotFoundError()

    membership = await get_membership(db, user.id, project.id)
    if not membership:
        logger.warning(f"User {user.id} denied access to project {project_uuid}")
        raise ProjectAccessDeniedError()

    return project, membership


async def get_member_project(
        project_id: UUID = Path(..., description="Project UUID"),
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
) -> Project:
    """Project in the path, for any of its members"""
    project, _ = await resolve_project_access(db, project_id, current_user)
    return project


async def get_admin_project(
        project_id: UUID = Path(..., description="Project UUID"),
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
) -> Project:
    """Project in the path, only for its Admins"""
    project, membership = await resolve_project_access(db, project_id, current_user)
    if membership.role != MemberRole.ADMIN:
        raise ProjectAccessDeniedError("Project admin role required")
    return project
