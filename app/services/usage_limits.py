"""
Story usage limits: the single "can this user generate a story right now" gate.

Subscribers are held to a monthly quota counted inside their current billing
cycle. Everyone else goes through the free trial / credit / preview paywall
classification of StoryCompletionService.
"""

from datetime import datetime
from typing import Optional
import logging

from app.core.config import Settings, settings as default_settings
from app.schemas.billing import (
    BillingCycleInfo,
    CanGenerateResult,
    DenialReason,
    PaywallBehavior,
    UsageIncrementResult,
    UsageStats,
)
from app.services.billing_cycle import BillingCycleService, reset_message
from app.services.story_completion import StoryCompletionService

logger = logging.getLogger(__name__)


class StoryUsageLimitsService:
    """Combines subscriber quota enforcement with the paywall classification."""

    def __init__(
        self,
        completion: StoryCompletionService,
        billing_cycle: BillingCycleService,
        config: Settings = default_settings,
    ):
        self.completion = completion
        self.billing_cycle = billing_cycle
        self.monthly_limit = config.SUBSCRIPTION_MONTHLY_LIMIT

    async def get_billing_cycle_info(
        self, user_id: str, now: Optional[datetime] = None
    ) -> BillingCycleInfo:
        """Quota usage in the subscriber's current cycle."""
        cycle = await self.billing_cycle.get_current_billing_cycle(user_id, now=now)
        if cycle is None:
            # Subscribed without an anchor date: nothing counted yet
            return BillingCycleInfo(
                used=0,
                limit=self.monthly_limit,
                remaining=self.monthly_limit,
            )

        used = await self.billing_cycle.count_stories_in_cycle(user_id, cycle)
        return BillingCycleInfo(
            used=used,
            limit=self.monthly_limit,
            remaining=max(0, self.monthly_limit - used),
            days_until_reset=cycle.days_remaining,
            cycle_start=cycle.cycle_start,
            cycle_end=cycle.cycle_end,
        )

    async def can_generate(
        self,
        user_id: str,
        include_illustrations: bool,
        now: Optional[datetime] = None,
    ) -> CanGenerateResult:
        """Check whether the user may start a story generation."""
        paywall = await self.completion.get_paywall_behavior(user_id, include_illustrations)

        if paywall.has_subscription:
            info = await self.get_billing_cycle_info(user_id, now=now)
            if info.used >= self.monthly_limit:
                logger.info(
                    f"User {user_id} reached subscription limit ({info.used}/{info.limit})"
                )
                return CanGenerateResult(
                    allowed=False,
                    reason=DenialReason.SUBSCRIPTION_LIMIT_REACHED,
                    message=self._limit_message(info),
                    paywall=paywall,
                    billing_cycle_info=info,
                )
            return CanGenerateResult(
                allowed=True,
                message=f"{info.remaining} of {info.limit} stories left this month",
                paywall=paywall,
                billing_cycle_info=info,
            )

        if not paywall.can_generate:
            if paywall.behavior == PaywallBehavior.PAYWALL_BEFORE_GENERATE:
                reason = DenialReason.PAYWALL_REQUIRED
                message = "Purchase a story or subscribe to Stories Plus to continue"
            else:
                reason = DenialReason.NO_ACCESS
                message = "You don't have access to story generation"
            logger.info(f"User {user_id} denied story {paywall.story_number}: {reason.value}")
            return CanGenerateResult(
                allowed=False,
                reason=reason,
                message=message,
                paywall=paywall,
            )

        return CanGenerateResult(allowed=True, paywall=paywall)

    def _limit_message(self, info: BillingCycleInfo) -> str:
        text = f"You've used all {info.limit} stories this month."
        if info.days_until_reset is not None:
            text = f"{text} {reset_message(info.days_until_reset)}."
        return text

    async def increment_usage(
        self,
        user_id: str,
        include_illustrations: bool = False,
        used_credit: bool = False,
        story_id: Optional[str] = None,
    ) -> UsageIncrementResult:
        """
        Record a successfully generated story.

        Paywall-relevant state is snapshotted before any counter changes so the
        story-2 flag is decided against the subscription the user had when the
        story was requested.
        """
        snapshot = await self.completion.get_user_story_status(user_id)

        new_story_count = await self.completion.increment_total_story_count(user_id)

        credit_consumed = False
        if used_credit:
            credit_consumed = await self.completion.consume_generation_credit(user_id)

        should_mark_paywall = (
            new_story_count == 2
            and not snapshot.has_active_subscription
            and not used_credit
        )
        if should_mark_paywall and story_id:
            await self.completion.mark_story_requires_paywall(story_id)
            logger.info(f"Story {story_id} flagged for paywall (user {user_id}, story #2)")

        free_trial_marked = False
        if new_story_count == 1 and include_illustrations and not snapshot.free_trial_used:
            await self.completion.mark_free_trial_used(user_id)
            free_trial_marked = True

        return UsageIncrementResult(
            new_story_count=new_story_count,
            should_mark_paywall=should_mark_paywall,
            credit_consumed=credit_consumed,
            free_trial_marked=free_trial_marked,
        )

    async def get_usage_stats(self, user_id: str, now: Optional[datetime] = None) -> UsageStats:
        """Usage figures for dashboards, for subscribers and everyone else."""
        status = await self.completion.get_user_story_status(user_id)
        stats = UsageStats(
            has_active_subscription=status.has_active_subscription,
            monthly_limit=self.monthly_limit,
            total_stories_generated=status.total_stories_generated,
            free_trial_used=status.free_trial_used,
            generation_credits=status.generation_credits,
        )

        if status.has_active_subscription:
            info = await self.get_billing_cycle_info(user_id, now=now)
            stats.stories_used_this_month = info.used
            stats.stories_remaining = info.remaining
            stats.days_until_reset = info.days_until_reset

        return stats
