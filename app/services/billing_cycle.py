"""
Billing cycle calculations and cycle-bounded story counting for subscribers.

Cycle boundaries are never stored: they are recomputed from
``subscription_starts_at`` on every query.
"""

from datetime import datetime, timezone
from typing import Optional
import logging
import math

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError

from app.core.config import Settings, settings as default_settings
from app.db.billing_store import UserBillingStore
from app.schemas.billing import BillingCycle, CycleDisplay, StoriesRemaining
from app.schemas.user import SubscriptionStatus, UserBillingProfile

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _on_anchor_day(month_start: datetime, anchor_day: int) -> datetime:
    # An absolute relativedelta day clamps to the month's last day (31 -> Feb 29)
    return month_start + relativedelta(day=anchor_day)


def calculate_billing_cycle(
    anchor: datetime,
    use_exact_timestamp_for_first_cycle: bool = False,
    now: Optional[datetime] = None,
) -> BillingCycle:
    """
    Compute the one-month window around ``now`` anchored to ``anchor``'s day of month.

    Args:
        anchor: The subscription start timestamp.
        use_exact_timestamp_for_first_cycle: During the first cycle, start at the
            anchor's exact instant instead of midnight so stories created earlier
            that day are not counted.
        now: Reference instant, defaults to the current UTC time.
    """
    now = _as_utc(now if now is not None else datetime.now(timezone.utc))
    anchor = _as_utc(anchor)
    anchor_day = anchor.day
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    cycle_start = _on_anchor_day(month_start, anchor_day)
    if cycle_start > now:
        cycle_start = _on_anchor_day(month_start - relativedelta(months=1), anchor_day)

    if use_exact_timestamp_for_first_cycle and cycle_start.date() == anchor.date():
        cycle_start = anchor

    cycle_end = _on_anchor_day(month_start, anchor_day)
    if cycle_end <= now:
        cycle_end = _on_anchor_day(month_start + relativedelta(months=1), anchor_day)

    days_remaining = math.ceil((cycle_end - now).total_seconds() / SECONDS_PER_DAY)

    return BillingCycle(
        cycle_start=cycle_start,
        cycle_end=cycle_end,
        days_remaining=max(0, days_remaining),
    )


def reset_message(days_remaining: int) -> str:
    if days_remaining == 0:
        return "Resets today"
    if days_remaining == 1:
        return "Resets tomorrow"
    return f"Resets in {days_remaining} days"


def format_cycle_dates(cycle: BillingCycle) -> CycleDisplay:
    """Format billing cycle dates for display."""
    return CycleDisplay(
        start_formatted=f"{cycle.cycle_start:%b} {cycle.cycle_start.day}",
        end_formatted=f"{cycle.cycle_end:%b} {cycle.cycle_end.day}",
        reset_message=reset_message(cycle.days_remaining),
    )


class BillingCycleService:
    """Current-cycle lookups against the billing store."""

    def __init__(self, store: UserBillingStore, config: Settings = default_settings):
        self.store = store
        self.monthly_limit = config.SUBSCRIPTION_MONTHLY_LIMIT

    async def get_current_billing_cycle(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Optional[BillingCycle]:
        """Current cycle for an active subscriber, None for everyone else."""
        try:
            doc = await self.store.get_profile(user_id)
        except Exception as e:
            logger.error(f"Error fetching subscription info for {user_id}: {e}")
            return None

        if not doc:
            logger.error(f"No profile found for user {user_id}")
            return None

        try:
            profile = UserBillingProfile.from_document(user_id, doc)
        except ValidationError as e:
            logger.error(f"Malformed subscription info for {user_id}: {e}")
            return None

        if profile.subscription_status != SubscriptionStatus.ACTIVE or not profile.subscription_starts_at:
            return None

        return calculate_billing_cycle(profile.subscription_starts_at, True, now=now)

    async def count_stories_in_cycle(self, user_id: str, cycle: BillingCycle) -> int:
        try:
            return await self.store.count_stories(user_id, cycle.cycle_start, cycle.cycle_end)
        except Exception as e:
            logger.error(f"Error counting stories in cycle for {user_id}: {e}")
            return 0

    async def get_stories_in_current_cycle(
        self, user_id: str, now: Optional[datetime] = None
    ) -> int:
        cycle = await self.get_current_billing_cycle(user_id, now=now)
        if cycle is None:
            return 0
        return await self.count_stories_in_cycle(user_id, cycle)

    async def has_stories_remaining(
        self, user_id: str, now: Optional[datetime] = None
    ) -> StoriesRemaining:
        used = await self.get_stories_in_current_cycle(user_id, now=now)
        remaining = max(0, self.monthly_limit - used)
        return StoriesRemaining(
            has_remaining=remaining > 0,
            used=used,
            limit=self.monthly_limit,
            remaining=remaining,
        )
