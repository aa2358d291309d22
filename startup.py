# © [2025] EDT&Partners. Licensed under CC BY 4.0.

from sqlalchemy.orm import Session
from database.db import create_tables
from tasks.session_cleanup_task import cleanup_expired_sessions
from logging_config import setup_logging

logger = setup_logging(module_name='startup')

async def create_database_tables() -> None:
    """Create any missing tables. There is no migration tooling, existing tables are left as they are."""
    logger.info("Creating database tables...")
    create_tables()
    logger.info("Database tables ready")

async def run_startup_tasks(db: Session):
    logger.info("Starting application startup tasks...")

    try:
        logger.info("Step 1/2: Creating database tables...")
        await create_database_tables()
        logger.info("✓ Database tables created")

        logger.info("Step 2/2: Deactivating expired sessions...")
        count = cleanup_expired_sessions(db)
        logger.info(f"✓ {count} expired sessions deactivated")

        logger.info("✓ All application startup tasks completed successfully")

    except Exception as e:
        logger.error(f"Error during startup tasks: {str(e)}")
        logger.error(f"Startup error type: {type(e).__name__}")
        raise
