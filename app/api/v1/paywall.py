from fastapi import APIRouter, Depends, HTTPException, Query
from app.api.deps import get_paywall_service, get_usage_limits_service
from app.api.v1.auth import get_current_user_id
from app.core.config import settings
from app.schemas.billing import GenerationCheckResponse, ViewingCheckResponse
from app.services.paywall import PaywallService
from app.services.usage_limits import StoryUsageLimitsService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/paywall", tags=["Paywall"])


@router.get("/check-generation", response_model=GenerationCheckResponse)
async def check_generation(
    include_illustrations: bool = Query(default=True),
    user_id: str = Depends(get_current_user_id),
    paywall_service: PaywallService = Depends(get_paywall_service),
    usage_limits: StoryUsageLimitsService = Depends(get_usage_limits_service),
):
    """
    Check whether the user can generate their next story.

    Combines the pre-generation paywall, the can-generate decision and the
    usage figures the dashboard shows next to the generate button.
    """
    try:
        paywall_result = await paywall_service.requires_paywall_before_generation(user_id)
        decision = await usage_limits.can_generate(user_id, include_illustrations)
        usage = await usage_limits.get_usage_stats(user_id)
    except Exception as e:
        logger.error(f"Error checking generation paywall for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to check paywall status")

    return GenerationCheckResponse(
        requires_paywall=paywall_result.required and not paywall_result.has_credits,
        story_number=decision.paywall.story_number,
        behavior=decision.paywall.behavior,
        has_credits=paywall_result.has_credits,
        has_subscription=paywall_result.has_subscription,
        free_trial_available=paywall_result.free_trial_available,
        can_generate=decision.allowed,
        reason=decision.reason,
        message=decision.message,
        usage=usage,
    )


@router.get("/check-viewing", response_model=ViewingCheckResponse)
async def check_viewing(
    story_id: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    paywall_service: PaywallService = Depends(get_paywall_service),
):
    """Check whether a specific story is paywalled for the current user."""
    try:
        result = await paywall_service.requires_paywall_for_viewing(user_id, story_id)
    except Exception as e:
        logger.error(f"Error checking viewing paywall for story {story_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to check paywall status")

    return ViewingCheckResponse(
        required=result.required,
        is_unlocked=result.is_unlocked,
        story_title=result.story_title,
        paywall_paragraph_index=settings.PAYWALL_PARAGRAPH_INDEX,
    )
