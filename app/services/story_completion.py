"""
Story completion tracking: per-user counters, free trial, generation credits,
and the paywall decision for the user's next story.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple
import logging

from pydantic import ValidationError

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import BillingStoreError
from app.db.billing_store import UserBillingStore
from app.schemas.billing import PaywallBehavior, PaywallBehaviorResult
from app.schemas.user import SubscriptionStatus, UserBillingProfile, UserStoryStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaywallRule:
    """One row of the paywall decision table."""
    name: str
    applies: Callable[[UserStoryStatus, int, bool], bool]
    behavior: PaywallBehavior
    can_generate: bool
    via_subscription: bool = False
    via_credits: bool = False


# Evaluated top to bottom, first match wins.
PAYWALL_RULES: Tuple[PaywallRule, ...] = (
    PaywallRule(
        name="active_subscription",
        applies=lambda status, story_number, illustrated: status.has_active_subscription,
        behavior=PaywallBehavior.FREE,
        can_generate=True,
        via_subscription=True,
    ),
    PaywallRule(
        name="generation_credits",
        applies=lambda status, story_number, illustrated: status.generation_credits > 0,
        behavior=PaywallBehavior.FREE,
        can_generate=True,
        via_credits=True,
    ),
    PaywallRule(
        name="free_illustrated_trial",
        applies=lambda status, story_number, illustrated: (
            story_number == 1 and illustrated and not status.free_trial_used
        ),
        behavior=PaywallBehavior.FREE,
        can_generate=True,
    ),
    PaywallRule(
        name="first_text_story",
        applies=lambda status, story_number, illustrated: story_number == 1 and not illustrated,
        behavior=PaywallBehavior.FREE,
        can_generate=True,
    ),
    PaywallRule(
        name="second_story_preview",
        applies=lambda status, story_number, illustrated: (
            story_number == 2
            or (story_number == 1 and illustrated and status.free_trial_used)
        ),
        behavior=PaywallBehavior.GENERATE_THEN_PAYWALL,
        can_generate=True,
    ),
    PaywallRule(
        name="purchased_preview_slot",
        applies=lambda status, story_number, illustrated: (
            story_number <= 2 + status.purchased_story_count
        ),
        behavior=PaywallBehavior.GENERATE_THEN_PAYWALL,
        can_generate=True,
    ),
    PaywallRule(
        name="paywall_before_generate",
        applies=lambda status, story_number, illustrated: True,
        behavior=PaywallBehavior.PAYWALL_BEFORE_GENERATE,
        can_generate=False,
    ),
)


def match_paywall_rule(status: UserStoryStatus, include_illustrations: bool) -> PaywallRule:
    """Return the first rule that applies to the user's next story."""
    story_number = status.total_stories_generated + 1
    for rule in PAYWALL_RULES:
        if rule.applies(status, story_number, include_illustrations):
            return rule
    # The last rule always applies
    return PAYWALL_RULES[-1]


def classify_next_story(status: UserStoryStatus, include_illustrations: bool) -> PaywallBehaviorResult:
    rule = match_paywall_rule(status, include_illustrations)
    return PaywallBehaviorResult(
        story_number=status.total_stories_generated + 1,
        behavior=rule.behavior,
        can_generate=rule.can_generate,
        has_credits=rule.via_credits,
        has_subscription=rule.via_subscription,
        free_trial_used=status.free_trial_used,
    )


class StoryCompletionService:
    """Source of truth for usage counters and the next-story paywall decision."""

    def __init__(self, store: UserBillingStore, config: Settings = default_settings):
        self.store = store
        self.stories_plus_tier = config.TIER_STORIES_PLUS

    async def _read_profile(self, user_id: str) -> UserBillingProfile:
        """Read the profile, falling back to a zero-privilege profile on any failure."""
        try:
            doc = await self.store.get_profile(user_id)
        except Exception as e:
            logger.error(f"Error fetching profile for {user_id}: {e}")
            return UserBillingProfile.empty(user_id)

        if not doc:
            logger.error(f"No profile found for user {user_id}")
            return UserBillingProfile.empty(user_id)

        try:
            return UserBillingProfile.from_document(user_id, doc)
        except ValidationError as e:
            logger.error(f"Malformed profile for {user_id}: {e}")
            return UserBillingProfile.empty(user_id)

    def is_active_subscription(self, profile: UserBillingProfile) -> bool:
        """Only an active Stories Plus subscription counts for quota purposes."""
        return (
            profile.subscription_status == SubscriptionStatus.ACTIVE
            and profile.subscription_tier_id == self.stories_plus_tier
        )

    async def get_user_story_status(self, user_id: str) -> UserStoryStatus:
        profile = await self._read_profile(user_id)
        logger.debug(
            f"User status for {user_id}: total={profile.total_stories_generated} "
            f"trial_used={profile.free_trial_used} credits={profile.generation_credits} "
            f"purchased={profile.purchased_story_count} status={profile.subscription_status.value} "
            f"tier={profile.subscription_tier_id}"
        )
        return UserStoryStatus(
            total_stories_generated=profile.total_stories_generated,
            free_trial_used=profile.free_trial_used,
            generation_credits=profile.generation_credits,
            purchased_story_count=profile.purchased_story_count,
            has_active_subscription=self.is_active_subscription(profile),
            subscription_tier_id=profile.subscription_tier_id,
        )

    async def get_total_completed_story_count(self, user_id: str) -> int:
        profile = await self._read_profile(user_id)
        return profile.total_stories_generated

    async def has_used_free_trial(self, user_id: str) -> bool:
        profile = await self._read_profile(user_id)
        return profile.free_trial_used

    async def get_generation_credits(self, user_id: str) -> int:
        profile = await self._read_profile(user_id)
        return profile.generation_credits

    async def has_active_subscription(self, user_id: str) -> bool:
        profile = await self._read_profile(user_id)
        return self.is_active_subscription(profile)

    async def get_paywall_behavior(
        self, user_id: str, include_illustrations: bool
    ) -> PaywallBehaviorResult:
        """
        Determine what happens when the user tries to generate their next story.

        Subscribers and credit holders generate freely (the subscriber quota is
        enforced separately), story 1 is free, story 2 is generated and then
        paywalled for viewing, and each single-story purchase unlocks one more
        such preview before generation itself is paywalled.
        """
        status = await self.get_user_story_status(user_id)
        return classify_next_story(status, include_illustrations)

    async def increment_total_story_count(self, user_id: str) -> int:
        """
        Increment the completed story counter and return the new value.

        Called when any story completes, illustrated or text-only. If the atomic
        increment fails, a non-atomic read-modify-write is used instead; two
        concurrent completions can then lose an update, which is accepted since
        the story itself has already been delivered.
        """
        try:
            return await self.store.increment(user_id, "total_stories_generated")
        except Exception as e:
            logger.warning(
                f"Atomic story count increment failed for {user_id}, "
                f"falling back to read-modify-write: {e}"
            )

        current = await self.get_total_completed_story_count(user_id)
        try:
            matched = await self.store.update_profile(
                user_id, {"total_stories_generated": current + 1}
            )
        except Exception as e:
            logger.error(f"Fallback story count update failed for {user_id}: {e}")
            return current + 1

        if not matched:
            logger.error(f"Fallback story count update matched no profile for {user_id}")
        return current + 1

    async def mark_free_trial_used(self, user_id: str) -> None:
        """Mark the free illustrated trial as consumed. Safe to call more than once."""
        try:
            matched = await self.store.update_profile(user_id, {"free_trial_used": True})
        except Exception as e:
            logger.error(f"Error marking free trial as used for {user_id}: {e}")
            raise BillingStoreError("Failed to mark free trial as used") from e

        if not matched:
            logger.error(f"Cannot mark free trial as used: no profile for {user_id}")
            raise BillingStoreError("Failed to mark free trial as used")

        logger.info(f"Free trial marked as used for user {user_id}")

    async def consume_generation_credit(self, user_id: str) -> bool:
        """Use one generation credit. Returns False when the user has none left."""
        try:
            consumed = await self.store.decrement_if_positive(user_id, "generation_credits")
        except Exception as e:
            logger.error(f"Error using generation credit for {user_id}: {e}")
            raise BillingStoreError("Failed to use generation credit") from e

        if consumed:
            logger.info(f"Generation credit consumed for user {user_id}")
        else:
            logger.warning(f"No generation credits left for user {user_id}")
        return consumed

    async def add_generation_credits(self, user_id: str, amount: int = 1) -> int:
        """Add credits after a purchase and return the new balance."""
        if amount < 1:
            raise ValueError("amount must be at least 1")
        try:
            balance = await self.store.increment(user_id, "generation_credits", amount)
        except Exception as e:
            logger.error(f"Error adding generation credits for {user_id}: {e}")
            raise BillingStoreError("Failed to add generation credit") from e

        logger.info(f"Added {amount} generation credit(s) for user {user_id}, balance {balance}")
        return balance

    async def increment_purchased_story_count(self, user_id: str) -> int:
        try:
            return await self.store.increment(user_id, "purchased_story_count")
        except Exception as e:
            logger.error(f"Error incrementing purchased story count for {user_id}: {e}")
            raise BillingStoreError("Failed to record story purchase") from e

    async def mark_story_requires_paywall(self, story_id: str) -> None:
        """Flag a story so it can only be viewed after purchase."""
        try:
            matched = await self.store.update_story(story_id, {"requires_paywall": True})
        except Exception as e:
            logger.error(f"Error marking story {story_id} as requiring paywall: {e}")
            raise BillingStoreError("Failed to mark story as requiring paywall") from e

        if not matched:
            raise BillingStoreError("Failed to mark story as requiring paywall")

    async def story_requires_paywall(self, story_id: str) -> bool:
        try:
            story: Optional[dict] = await self.store.get_story(story_id)
        except Exception as e:
            logger.error(f"Error checking paywall flag for story {story_id}: {e}")
            return False
        if not story:
            return False
        return bool(story.get("requires_paywall"))
