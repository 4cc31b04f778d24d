from datetime import datetime
from typing import Optional
import logging

from app.core.exceptions import AuthorizationError, BillingStoreError, StoryNotFoundError
from app.db.billing_store import UserBillingStore
from app.schemas.billing import (
    PaywallGenerationResult,
    PaywallViewingResult,
    SubscriptionSummary,
)
from app.services.story_completion import StoryCompletionService
from app.services.usage_limits import StoryUsageLimitsService

logger = logging.getLogger(__name__)


class PaywallService:
    """Paywall checks for viewing stories and for the subscription overview."""

    def __init__(
        self,
        store: UserBillingStore,
        completion: StoryCompletionService,
        usage_limits: StoryUsageLimitsService,
    ):
        self.store = store
        self.completion = completion
        self.usage_limits = usage_limits

    async def _get_story(self, story_id: str) -> Optional[dict]:
        try:
            return await self.store.get_story(story_id)
        except Exception as e:
            logger.error(f"Error checking story paywall status for {story_id}: {e}")
            return None

    async def requires_paywall_for_viewing(
        self, user_id: str, story_id: str
    ) -> PaywallViewingResult:
        """Whether a story is paywalled for this user and whether it has been unlocked."""
        story = await self._get_story(story_id)
        owned = bool(story) and story.get("user_id") == user_id
        title = story.get("title") if owned else None

        if await self.completion.has_active_subscription(user_id):
            return PaywallViewingResult(required=False, is_unlocked=True, story_title=title)

        if not story:
            return PaywallViewingResult(required=False, is_unlocked=True)

        if not owned:
            return PaywallViewingResult(required=True, is_unlocked=False)

        if not story.get("requires_paywall"):
            return PaywallViewingResult(required=False, is_unlocked=True, story_title=title)

        return PaywallViewingResult(
            required=True,
            is_unlocked=bool(story.get("is_unlocked")),
            story_title=title,
        )

    async def requires_paywall_before_generation(self, user_id: str) -> PaywallGenerationResult:
        """Whether the user must pay before any generation can start."""
        status = await self.completion.get_user_story_status(user_id)
        story_number = status.total_stories_generated + 1

        if status.has_active_subscription:
            return PaywallGenerationResult(
                required=False,
                story_number=story_number,
                has_credits=False,
                has_subscription=True,
                free_trial_available=False,
            )

        if status.generation_credits > 0:
            return PaywallGenerationResult(
                required=False,
                story_number=story_number,
                has_credits=True,
                has_subscription=False,
                free_trial_available=True,
            )

        return PaywallGenerationResult(
            required=True,
            story_number=story_number,
            has_credits=False,
            has_subscription=False,
            free_trial_available=True,
        )

    async def is_story_unlocked(self, user_id: str, story_id: str) -> bool:
        result = await self.requires_paywall_for_viewing(user_id, story_id)
        return result.is_unlocked

    async def unlock_story(self, user_id: str, story_id: str, purchase_id: str) -> None:
        """Mark a paywalled story as unlocked after payment."""
        try:
            story = await self.store.get_story(story_id)
        except Exception as e:
            logger.error(f"Error fetching story {story_id} for unlock: {e}")
            raise StoryNotFoundError(story_id)

        if not story:
            raise StoryNotFoundError(story_id)

        if story.get("user_id") != user_id:
            raise AuthorizationError("Story does not belong to user")

        try:
            await self.store.update_story(story_id, {
                "is_unlocked": True,
                "unlock_purchase_id": purchase_id,
            })
        except Exception as e:
            logger.error(f"Error unlocking story {story_id}: {e}")
            raise BillingStoreError("Failed to unlock story") from e

        logger.info(f"Story {story_id} unlocked for user {user_id} (purchase {purchase_id})")

    async def get_subscription_status(
        self, user_id: str, now: Optional[datetime] = None
    ) -> SubscriptionSummary:
        if not await self.completion.has_active_subscription(user_id):
            return SubscriptionSummary(has_active_subscription=False)

        info = await self.usage_limits.get_billing_cycle_info(user_id, now=now)
        return SubscriptionSummary(
            has_active_subscription=True,
            stories_remaining=info.remaining,
            stories_used_this_month=info.used,
            billing_cycle_start=info.cycle_start,
            billing_cycle_end=info.cycle_end,
            days_until_reset=info.days_until_reset,
        )

    async def has_reached_subscription_limit(
        self, user_id: str, now: Optional[datetime] = None
    ) -> bool:
        """Only meaningful for subscribers; always False for everyone else."""
        if not await self.completion.has_active_subscription(user_id):
            return False

        info = await self.usage_limits.get_billing_cycle_info(user_id, now=now)
        return info.remaining == 0
