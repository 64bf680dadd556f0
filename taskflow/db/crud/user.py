from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import Optional
from loguru import logger

from taskflow.db.models import User, ProjectMember


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
    """
    Asynchronously retrieves a user by the auth provider's subject id.
    """
    try:
        result = await db.execute(select(User).filter(User.id == user_id))
        user = result.scalars().first()
        if user:
            logger.debug(f"User found: ID {user_id}")
        return user
    except Exception as e:
        logger.error(f"Error retrieving user by ID {user_id}: {e}")
        return None


async def sync_user_from_claims(
        db: AsyncSession,
        user_id: str,
        email: str,
        name: Optional[str] = None,
        image: Optional[str] = None
) -> User:
    """
    Create or refresh the local mirror of an auth provider user.

    The provider owns identities; the local row only exists so projects and
    tasks can reference it.
    """
    try:
        user = await get_user_by_id(db, user_id)
        if user is None:
            user = User(id=user_id, email=email, name=name, image=image)
            db.add(user)
            logger.info(f"User mirrored from auth provider: {email}")
        else:
            claims = {"email": email, "name": name, "image": image}
            changed = {k: v for k, v in claims.items() if v is not None and getattr(user, k) != v}
            if not changed:
                return user
            for field, value in changed.items():
                setattr(user, field, value)

        await db.commit()
        await db.refresh(user)
        return user
    except Exception as e:
        logger.error(f"Failed to sync user {user_id}: {e}")
        await db.rollback()
        raise


async def get_membership(db: AsyncSession, user_id: str, project_id: int) -> Optional[ProjectMember]:
    """Membership of a user in a project, if any"""
    try:
        result = await db.execute(
            select(ProjectMember).filter(
                ProjectMember.user_id == user_id,
                ProjectMember.project_id == project_id
            )
        )
        return result.scalars().first()
    except Exception as e:
        logger.error(f"Error checking project membership: {e}")
        return None


async def is_user_in_project(db: AsyncSession, user_id: str, project_id: int) -> bool:
    """Check if user is a member of the project"""
    return await get_membership(db, user_id, project_id) is not None
