from fastapi import APIRouter, Depends, HTTPException
from app.api.deps import get_paywall_service, get_usage_limits_service
from app.api.v1.auth import get_current_user_id
from app.schemas.billing import SubscriptionSummary, UsageStats
from app.services.paywall import PaywallService
from app.services.usage_limits import StoryUsageLimitsService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["Subscription"])


@router.get("/usage", response_model=UsageStats)
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    usage_limits: StoryUsageLimitsService = Depends(get_usage_limits_service),
):
    """Get usage statistics for the current user."""
    try:
        return await usage_limits.get_usage_stats(user_id)
    except Exception as e:
        logger.error(f"Usage stats error for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch usage statistics")


@router.get("/status", response_model=SubscriptionSummary)
async def get_subscription_status(
    user_id: str = Depends(get_current_user_id),
    paywall_service: PaywallService = Depends(get_paywall_service),
):
    """Get the current user's subscription and billing cycle overview."""
    try:
        return await paywall_service.get_subscription_status(user_id)
    except Exception as e:
        logger.error(f"Subscription status error for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch subscription status")
