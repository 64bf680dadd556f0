import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from fastapi import HTTPException
from taskflow.core import tracing as logger
from taskflow.core.config import settings

# Configure logging for SQLAlchemy (ORM logs only)
logging.basicConfig()
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _engine_options(database_url: str) -> dict:
    """Driver specific engine options"""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}

    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "connect_args": {
            "server_settings": {
                "application_name": "taskflow_api"
            },
            "command_timeout": 5,
        },
    }


def enable_sqlite_foreign_keys(async_engine) -> None:
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection"""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# SQLAlchemy Engine
engine = create_async_engine(settings.DATABASE_URL, echo=False, **_engine_options(settings.DATABASE_URL))
if settings.is_sqlite:
    enable_sqlite_foreign_keys(engine)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False
)

# Declarative base class
Base = declarative_base()


async def init_db():
    """Create the tables described by the ORM metadata."""
    # Register every model on Base.metadata
    from taskflow.db import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error("Database initialization failed", error=str(e), type=type(e).__name__)
        raise


async def get_db():
    """Async session dependency with trace-aware error logging."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            if isinstance(e, HTTPException):
                logger.error(
                    "Database session error",
                    error=e.detail or str(e),
                    type=type(e).__name__,
                    status_code=e.status_code
                )
            else:
                logger.error(
                    "Database session error",
                    error=str(e),
                    type=type(e).__name__
                )
            await session.rollback()
            raise
