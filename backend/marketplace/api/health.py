from fastapi import APIRouter

from marketplace.api.schemas import PublicConfigResponse
from marketplace.core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/config/public", response_model=PublicConfigResponse)
async def public_config():
    """Fees and limits the clients display before a user commits money."""
    return PublicConfigResponse(
        accept_fee_percent=settings.accept_fee_percent,
        release_fee_percent=settings.release_fee_percent,
        offer_ttl_hours=settings.offer_ttl_hours,
        offer_min_budget=settings.offer_min_budget,
        offer_max_budget=settings.offer_max_budget,
        max_pending_withdrawals=settings.max_pending_withdrawals,
        withdrawal_max_amount=settings.withdrawal_max_amount,
        withdrawal_min_amounts=settings.withdrawal_min_amounts,
        gateway_mode=settings.gateway_mode,
    )
