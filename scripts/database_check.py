"""
Database connectivity and board statistics check
"""
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from taskflow.db.database import AsyncSessionLocal
from taskflow.db.models import Task, TaskStatus, TimerStatus
from sqlalchemy import text, select, func
from loguru import logger


async def check_database():
    """Check database connectivity and table status"""
    logger.info("Checking database connectivity...")

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
            logger.info("Database connection successful")

            user_count = await db.execute(text("SELECT COUNT(*) FROM users"))
            project_count = await db.execute(text("SELECT COUNT(*) FROM projects"))
            task_count = await db.execute(text("SELECT COUNT(*) FROM tasks"))
            dependency_count = await db.execute(text("SELECT COUNT(*) FROM task_dependencies"))

            logger.info("Database statistics:")
            logger.info(f"   Users: {user_count.scalar()}")
            logger.info(f"   Projects: {project_count.scalar()}")
            logger.info(f"   Tasks: {task_count.scalar()}")
            logger.info(f"   Dependencies: {dependency_count.scalar()}")

            by_status = await db.execute(select(Task.status, func.count(Task.id)).group_by(Task.status))
            for status, count in by_status.all():
                logger.info(f"   {TaskStatus(status).value}: {count}")

            running = await db.scalar(
                select(func.count(Task.id)).filter(Task.timer_status != TimerStatus.IDLE)
            )
            logger.info(f"   Running timers: {running}")

    except Exception as e:
        logger.error(f"Database check failed: {e}")
        raise

if __name__ == "__main__":
    asyncio.run(check_database())
