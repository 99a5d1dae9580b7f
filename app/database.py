import asyncpg
from contextlib import asynccontextmanager
from app.config import settings
import logging

logger = logging.getLogger(__name__)

class DatabasePool:
    _pool = None

    @classmethod
    async def create_pool(cls):
        if cls._pool is None:
            try:
                cls._pool = await asyncpg.create_pool(
                    **settings.db_connection_params,
                    min_size=2,
                    max_size=20,
                    max_inactive_connection_lifetime=300,
                    command_timeout=30,
                    timeout=30
                )
                logger.info(f"Database pool created: {settings.db_name}@{settings.db_host}")
            except Exception as e:
                logger.error(f"Failed to create database pool: {e}")
                raise
        return cls._pool

    @classmethod
    async def close_pool(cls):
        if cls._pool:
            await cls._pool.close()
            cls._pool = None
            logger.info("Database pool closed")

    @classmethod
    async def ping(cls) -> bool:
        """True when the relational store answers a trivial query"""
        try:
            async with get_db_connection(use_transaction=False) as conn:
                return await conn.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

@asynccontextmanager
async def get_db_connection(use_transaction: bool = True):
    """
    Get database connection from pool.

    Args:
        use_transaction: If True, wraps operations in a transaction.
                        Set to False for read-only operations.

    Usage:
    async with get_db_connection() as conn:
        row = await conn.fetchrow("SELECT * FROM affiliate_merchant WHERE affiliate_id = $1", merchant_id)

    Credential lookups always go through here so every charge sees the
    current row; nothing read from this store is cached.
    """
    pool = await DatabasePool.create_pool()
    async with pool.acquire() as connection:
        if use_transaction:
            async with connection.transaction():
                yield connection
        else:
            yield connection
