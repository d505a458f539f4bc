from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from libs.db.config import AsyncSessionLocal, engine


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def ping_database() -> None:
    """Health probe: round-trip a trivial statement."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
