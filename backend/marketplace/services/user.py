"""User lookups; accounts themselves are owned by the identity service."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.user import User


async def get_user_by_id(db: AsyncSession, user_id: int, *, lock: bool = False) -> User | None:
    stmt = select(User).where(User.id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
