from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.schemas import ReviewResponse
from marketplace.core.deps import get_db
from marketplace.services import review as review_svc

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.get("/users/{user_id}", response_model=list[ReviewResponse])
async def list_user_reviews(
    user_id: int,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Public reviews received by a user."""
    return await review_svc.list_user_reviews(db, user_id, offset=offset, limit=limit)
