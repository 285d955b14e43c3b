"""
PostgreSQL Database Connection Module
Provides async PostgreSQL connection management with asyncpg
"""
import asyncpg
import logging
import time
from typing import Optional

from config import settings
from utils.debug import Loggers

logger = logging.getLogger(__name__)

# Global database connection pool
_pool: Optional[asyncpg.Pool] = None

# SQL Schema
SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(255) PRIMARY KEY,
    email VARCHAR(255) UNIQUE NOT NULL,
    password VARCHAR(255),
    name VARCHAR(255) NOT NULL,
    is_admin BOOLEAN DEFAULT FALSE,
    roles TEXT DEFAULT '[]',
    email_verified BOOLEAN DEFAULT FALSE,
    subscription_tier VARCHAR(50) DEFAULT 'free',
    subscription_status VARCHAR(50) DEFAULT 'free',
    trial_ends_at TIMESTAMP,
    usage_tracking TEXT DEFAULT '{}',
    created_at TIMESTAMP NOT NULL,
    last_login TIMESTAMP
);
"""

INDICES = """
CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);
"""


async def init_db() -> asyncpg.Pool:
    """Initialize the database connection pool and create tables"""
    global _pool

    start_time = time.time()
    # Log without credentials
    Loggers.db.info("Starting database initialization", database_url=settings.database_url.split("@")[-1])

    try:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=2,
            max_size=10,
            command_timeout=60
        )
    except Exception as e:
        Loggers.db.error(f"Failed to create connection pool: {e}", exc_info=True)
        raise

    async with _pool.acquire() as conn:
        await conn.execute(SCHEMA)
        await conn.execute(INDICES)

    total_time = (time.time() - start_time) * 1000
    logger.info("Database initialized successfully")
    Loggers.db.info("Database initialization complete", total_duration_ms=f"{total_time:.2f}")

    return _pool


async def get_db() -> asyncpg.Pool:
    """Get the database connection pool"""
    global _pool
    if _pool is None:
        _pool = await init_db()
    return _pool


async def close_db():
    """Close the database connection pool"""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database connection pool closed")


def dict_from_row(row) -> dict:
    """Convert a Record object to a dictionary"""
    if row is None:
        return None
    return dict(row)
