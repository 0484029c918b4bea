"""
Shared fixtures: a throwaway SQLite database per test
"""

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import Base
import app.models  # noqa: F401


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh file-backed SQLite database"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bizdesk-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
