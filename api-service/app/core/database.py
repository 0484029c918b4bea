"""
Database Configuration and Session Management
Async engine, session factory and lifecycle helpers
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import event, text
import structlog

from app.core.simple_config import settings, DATABASE_CONFIG

logger = structlog.get_logger()

database_url = settings.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

is_sqlite = database_url.startswith("sqlite")

if is_sqlite:
    # SQLite uses a static pool; pool sizing options are rejected by the dialect
    engine_kwargs = {"echo": DATABASE_CONFIG["echo"]}
else:
    engine_kwargs = {**DATABASE_CONFIG}
    engine_kwargs["connect_args"] = {
        "server_settings": {
            "jit": "off",
            "application_name": "bizdesk-api",
        }
    }

engine = create_async_engine(
    database_url,
    **engine_kwargs
)

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base
Base = declarative_base()


# Database dependency for FastAPI
async def get_db() -> AsyncSession:
    """
    Database session dependency for FastAPI endpoints
    Ensures proper session cleanup and error handling
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """Turn on foreign key enforcement for SQLite connections"""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if is_sqlite:
    event.listen(engine.sync_engine, "connect", enable_sqlite_foreign_keys)


@event.listens_for(engine.sync_engine, "checkout")
def receive_checkout(dbapi_connection, connection_record, connection_proxy):
    """Log connection checkout for monitoring"""
    logger.debug("Database connection checked out", connection_id=id(dbapi_connection))


@event.listens_for(engine.sync_engine, "checkin")
def receive_checkin(dbapi_connection, connection_record):
    """Log connection checkin for monitoring"""
    logger.debug("Database connection checked in", connection_id=id(dbapi_connection))


# Health check function
async def check_database_health() -> bool:
    """
    Check database connectivity
    Used by health check endpoints
    """
    try:
        async with engine.begin() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return False


async def init_database():
    """
    Create tables for every registered model
    Called during application startup
    """
    try:
        async with engine.begin() as conn:
            # Import all models to ensure they're registered
            from app.models import account, company, invitation_code, membership, permission, role  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Database initialization failed", error=str(e))
        raise


async def close_database():
    """
    Close database connections
    Called during application shutdown
    """
    try:
        await engine.dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error("Error closing database connections", error=str(e))
