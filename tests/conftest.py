"""
Shared fixtures: a throwaway SQLite database per test and a TestClient bound to it.
"""
import asyncio
import os

# database.py fails fast without a URL; the engine it builds is never used in tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./bootstrap.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from database import get_session
from main import app


async def _create_all(engine):
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@pytest.fixture
def session_factory(tmp_path):
    # NullPool: every session opens its own connection on whichever loop runs it
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    asyncio.run(_create_all(engine))
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seed(session_factory):
    """Persist model instances in order and return them with ids filled in."""

    def _seed(*rows):
        async def _run():
            async with session_factory() as session:
                for row in rows:
                    session.add(row)
                    await session.commit()
                    await session.refresh(row)

        asyncio.run(_run())
        return rows if len(rows) > 1 else rows[0]

    return _seed
