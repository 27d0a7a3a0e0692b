from functools import lru_cache

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker

from api.src.config import get_settings
from controller.src.models.db import Base

def async_url(database_url: str) -> str:
    """Convert a sync database URL to its async driver form."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url

@lru_cache()
def get_engine() -> AsyncEngine:
    return create_async_engine(async_url(get_settings().database_url))

@lru_cache()
def get_sessionmaker() -> async_sessionmaker:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)

async def get_db():
    async with get_sessionmaker()() as session:
        try:
            yield session
        finally:
            await session.close()

async def init_db():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
