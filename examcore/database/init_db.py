"""
Database initialization and connection management.

This module provides functions for:
1. Initializing the async engine and session factory
2. Creating the schema
3. Closing the connection pool
"""

from typing import Any, Dict, Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from examcore.common.config import DatabaseConfig
from examcore.common.logger import app_logger
from examcore.database.base import Base
from examcore.database import models  # noqa: F401  registers tables on Base.metadata

# Setup module logger
logger = app_logger.getChild("database.init_db")

# Global engine instance
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine_kwargs(config: DatabaseConfig) -> Dict[str, Any]:
    """
    Get engine keyword arguments based on database type.

    SQLite uses the driver's default pool, which rejects pool sizing options.
    """
    kwargs: Dict[str, Any] = {"echo": config.echo, "future": True}

    if not config.is_sqlite:
        kwargs.update({
            "pool_size": config.pool_size,
            "max_overflow": config.max_overflow,
            "pool_timeout": config.pool_timeout,
            "pool_pre_ping": True,
        })

    return kwargs


def get_session_factory() -> sessionmaker:
    """Get the async session factory bound to the global engine."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


async def initialize_database(config: DatabaseConfig, create_schema: bool = True) -> AsyncEngine:
    """
    Initialize the async database engine.

    Args:
        config: Database configuration
        create_schema: Whether to create missing tables

    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory

    try:
        logger.info(f"Initializing database with URL: {config.url[:10]}...")

        _engine = create_async_engine(config.url, **get_engine_kwargs(config))
        _session_factory = sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Test connection
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        if create_schema:
            async with _engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        logger.info("Database engine initialized successfully")
        return _engine

    except Exception as e:
        logger.error(f"Failed to initialize async database: {str(e)}")
        raise


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine closed successfully")
