from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def _engine_kwargs(url: str) -> dict:
    # sqlite (tests, local runs) has no connection pool sizing
    if url.startswith("sqlite"):
        return {}
    return {"pool_pre_ping": True, "pool_size": settings.database_pool_size}


engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session
