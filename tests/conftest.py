"""
Pytest configuration and fixtures for Taskflow API tests
"""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-taskflow-tests")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
from datetime import datetime, timezone
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from taskflow.main import app
from taskflow.db.database import get_db, Base, enable_sqlite_foreign_keys
from taskflow.db import models  # noqa: F401
from taskflow.db.models import User, Project, ProjectMember, MemberRole
from taskflow.auth.security import create_access_token, provider_claims

TEST_DATABASE_URL = "sqlite+aiosqlite://"

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database for each test"""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    enable_sqlite_foreign_keys(test_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False
    )
    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database session override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(user_id: str = "user-1", email: str = "owner@example.com", name: str = "Owner") -> dict:
    """Bearer header with a token shaped like the auth provider's"""
    token = create_access_token(provider_claims(user_id, email, name=name))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_headers() -> dict:
    return auth_headers()


@pytest.fixture
def outsider_headers() -> dict:
    return auth_headers("user-2", "outsider@example.com", "Outsider")


@pytest.fixture
async def owner(db_session: AsyncSession) -> User:
    user = User(id="user-1", name="Owner", email="owner@example.com")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def project(db_session: AsyncSession, owner: User) -> Project:
    """A project owned (as Admin) by `owner`"""
    project = Project(name="Launch", creator_id=owner.id)
    db_session.add(project)
    await db_session.flush()
    db_session.add(ProjectMember(project_id=project.id, user_id=owner.id, role=MemberRole.ADMIN))
    await db_session.commit()
    await db_session.refresh(project)
    return project


@pytest.fixture
def headers_for():
    """Factory for bearer headers of other users"""
    return auth_headers
