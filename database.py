import os
import logging
from typing import AsyncIterator
from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Settings come from the environment, optionally seeded by a local .env
load_dotenv()

DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set. Please check your .env file.")

SQL_ECHO = os.environ.get("SQL_ECHO", "false").lower() in ("1", "true", "yes")

# Postgres in production (asyncpg); tests swap in their own SQLite engine
engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO, future=True)

SessionFactory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    async with engine.begin() as conn:
        # Idempotent: existing tables are left alone
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database schema ready")


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionFactory() as session:
        yield session
