from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    Anything left uncommitted when the request fails is rolled back, so a
    transition that raised halfway never leaves partial rows behind.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
