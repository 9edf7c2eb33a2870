"""
Application lifespan management for startup and shutdown events
"""
import logging
from contextlib import asynccontextmanager

from .core.config import validate_config
from .db import init_db
from .dependencies import get_sweeper

logger = logging.getLogger("smsauth")


@asynccontextmanager
async def lifespan(app):
    """Validate config, create tables, run the sweeper for the app's lifetime."""
    logger.info("Starting smsauth...")

    validate_config()
    init_db()
    logger.info("Database tables ready")

    sweeper = get_sweeper()
    await sweeper.start()

    try:
        yield
    finally:
        logger.info("Shutting down smsauth...")
        await sweeper.stop()
