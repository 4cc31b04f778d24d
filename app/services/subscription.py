"""
Subscription and purchase bookkeeping.

These are the calls the payment integration makes once a Stripe event has
been verified and decoded; parsing the events themselves happens elsewhere.
"""

from datetime import datetime, timezone
from typing import Optional
import logging

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import BillingStoreError
from app.db.billing_store import UserBillingStore
from app.schemas.user import SubscriptionStatus
from app.services.paywall import PaywallService
from app.services.story_completion import StoryCompletionService

logger = logging.getLogger(__name__)

# Map Stripe subscription statuses to ours
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.INACTIVE,
}


def map_stripe_status(stripe_status: str) -> SubscriptionStatus:
    return STRIPE_STATUS_MAP.get(stripe_status, SubscriptionStatus.INACTIVE)


class SubscriptionService:
    def __init__(
        self,
        store: UserBillingStore,
        completion: StoryCompletionService,
        paywall: PaywallService,
        config: Settings = default_settings,
    ):
        self.store = store
        self.completion = completion
        self.paywall = paywall
        self.free_tier = config.TIER_FREE

    async def _write_profile(self, user_id: str, fields: dict, action: str) -> None:
        try:
            matched = await self.store.update_profile(user_id, fields)
        except Exception as e:
            logger.error(f"Error during {action} for user {user_id}: {e}")
            raise BillingStoreError(f"Failed to {action}") from e
        if not matched:
            logger.error(f"Cannot {action}: no profile for user {user_id}")
            raise BillingStoreError(f"Failed to {action}")

    async def activate_subscription(
        self,
        user_id: str,
        tier_id: str,
        customer_id: Optional[str],
        subscription_id: Optional[str],
        period_start: datetime,
        period_end: Optional[datetime] = None,
    ) -> None:
        """
        Start a new subscription.

        The period start becomes the billing-cycle anchor, and the lifetime story
        counter restarts at zero.
        """
        await self._write_profile(user_id, {
            "subscription_tier_id": tier_id,
            "stripe_customer_id": customer_id,
            "stripe_subscription_id": subscription_id,
            "subscription_status": SubscriptionStatus.ACTIVE.value,
            "subscription_starts_at": period_start,
            "subscription_ends_at": period_end,
            "total_stories_generated": 0,
        }, "activate subscription")
        logger.info(f"Subscription activated for user {user_id} - tier: {tier_id}")

    async def update_subscription_status(
        self,
        user_id: str,
        stripe_status: str,
        tier_id: Optional[str] = None,
    ) -> SubscriptionStatus:
        status = map_stripe_status(stripe_status)
        fields = {"subscription_status": status.value}
        if tier_id:
            fields["subscription_tier_id"] = tier_id
        await self._write_profile(user_id, fields, "update subscription")
        logger.info(f"Subscription updated for user {user_id} - status: {status.value}")
        return status

    async def cancel_subscription(self, user_id: str) -> None:
        """Downgrade to the free tier."""
        await self._write_profile(user_id, {
            "subscription_tier_id": self.free_tier,
            "subscription_status": SubscriptionStatus.INACTIVE.value,
            "subscription_ends_at": datetime.now(timezone.utc),
        }, "cancel subscription")
        logger.info(f"Subscription canceled for user {user_id} - downgraded to {self.free_tier}")

    async def record_story_purchase(
        self,
        user_id: str,
        story_id: Optional[str],
        purchase_id: str,
    ) -> int:
        """
        Record a single-story purchase.

        Opens one more preview slot, then unlocks the purchased story when one
        is named. Returns the new purchased story count.
        """
        # Slot before unlock: a failed unlock must not drop a paid purchase
        count = await self.completion.increment_purchased_story_count(user_id)
        if story_id:
            await self.paywall.unlock_story(user_id, story_id, purchase_id)
        logger.info(f"Story purchase {purchase_id} recorded for user {user_id}, count {count}")
        return count

    async def record_credit_purchase(self, user_id: str, amount: int = 1) -> int:
        return await self.completion.add_generation_credits(user_id, amount)
