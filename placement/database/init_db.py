"""
Database initialization and connection management.

This module provides functions for:
1. Creating the global async engine
2. Handing out async sessions to repositories
3. Creating the schema for development databases
4. Disposing of the connection pool on shutdown
"""

from typing import Optional, Callable
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from placement.common.logger import app_logger
from placement.database.base import Base

# Setup module logger
logger = app_logger.getChild("database.init_db")

# Global engine instance and session factory
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[Callable[[], AsyncSession]] = None


def _engine_options(
    database_url: str,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int
) -> dict:
    """Pool options appropriate for the database dialect."""
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases must share one connection to keep their data
        if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
    }


def get_session_factory() -> Callable[[], AsyncSession]:
    """Get the async session factory bound to the global engine."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


async def initialize_database(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    create_schema: bool = False,
) -> AsyncEngine:
    """
    Initialize the async database engine.
    
    Args:
        database_url: Database connection URL
        echo: Whether to echo SQL statements
        pool_size: Connection pool size
        max_overflow: Maximum number of connections to allow above pool_size
        pool_timeout: Timeout for getting a connection from the pool
        create_schema: Whether to create missing tables (development only,
            production databases are migrated with alembic)
        
    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory
    
    try:
        logger.info(f"Initializing database with URL: {database_url[:10]}...")
        
        _engine = create_async_engine(
            database_url,
            echo=echo,
            future=True,
            **_engine_options(database_url, pool_size, max_overflow, pool_timeout)
        )
        
        _session_factory = sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        
        # Test connection
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        
        if create_schema:
            # Import models so their tables are registered on the metadata
            from placement.assessments.placement_test import database_models  # noqa: F401
            async with _engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database schema created")
            
        logger.info("Database engine initialized successfully")
        return _engine
        
    except Exception as e:
        logger.error(f"Failed to initialize async database: {str(e)}")
        raise


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory
    
    if _engine:
        try:
            await _engine.dispose()
            logger.info("Database engine closed successfully")
        except Exception as e:
            logger.error(f"Error closing database engine: {str(e)}")
            raise
        finally:
            _engine = None
            _session_factory = None
