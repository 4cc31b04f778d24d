"""
Billing cycle tests: window math around month ends, first-cycle exact
timestamps, display formatting, and cycle-bounded story counting.
"""

from datetime import datetime, timedelta

import pytest

from app.services.billing_cycle import calculate_billing_cycle, format_cycle_dates
from conftest import utc


# ---------------------------------------------------------------------------
# calculate_billing_cycle()
# ---------------------------------------------------------------------------

class TestCalculateBillingCycle:

    def test_anchor_on_31st_first_cycle_uses_exact_timestamp(self):
        anchor = utc(2024, 1, 31, 10)
        cycle = calculate_billing_cycle(anchor, True, now=utc(2024, 2, 15))

        assert cycle.cycle_start == anchor
        assert cycle.cycle_end == utc(2024, 2, 29)
        assert cycle.days_remaining == 14

    def test_without_exact_timestamp_start_is_midnight(self):
        cycle = calculate_billing_cycle(utc(2024, 1, 31, 10), False, now=utc(2024, 2, 15))
        assert cycle.cycle_start == utc(2024, 1, 31)

    def test_exact_timestamp_only_applies_to_first_cycle(self):
        anchor = utc(2024, 1, 10, 15, 30)
        cycle = calculate_billing_cycle(anchor, True, now=utc(2024, 3, 20))

        assert cycle.cycle_start == utc(2024, 3, 10)
        assert cycle.cycle_end == utc(2024, 4, 10)

    def test_february_never_overflows_into_march(self):
        anchor = utc(2023, 1, 31, 8)

        early = calculate_billing_cycle(anchor, now=utc(2023, 2, 10))
        assert early.cycle_start == utc(2023, 1, 31)
        assert early.cycle_end == utc(2023, 2, 28)

        late = calculate_billing_cycle(anchor, now=utc(2023, 2, 28, 12))
        assert late.cycle_start == utc(2023, 2, 28)
        assert late.cycle_end == utc(2023, 3, 31)

    def test_thirty_day_month(self):
        cycle = calculate_billing_cycle(utc(2024, 1, 31), now=utc(2024, 5, 15))
        assert cycle.cycle_start == utc(2024, 4, 30)
        assert cycle.cycle_end == utc(2024, 5, 31)

    def test_now_on_anchor_day_starts_new_cycle(self):
        cycle = calculate_billing_cycle(utc(2024, 1, 15, 9), now=utc(2024, 6, 15, 8))
        assert cycle.cycle_start == utc(2024, 6, 15)
        assert cycle.cycle_end == utc(2024, 7, 15)
        assert cycle.days_remaining == 30

    def test_year_boundary(self):
        cycle = calculate_billing_cycle(utc(2024, 3, 20), now=utc(2025, 1, 5))
        assert cycle.cycle_start == utc(2024, 12, 20)
        assert cycle.cycle_end == utc(2025, 1, 20)

    def test_days_remaining_rounds_up_partial_days(self):
        cycle = calculate_billing_cycle(utc(2024, 1, 10), now=utc(2024, 2, 9, 23, 59))
        assert cycle.cycle_end == utc(2024, 2, 10)
        assert cycle.days_remaining == 1

    def test_naive_datetimes_are_treated_as_utc(self):
        cycle = calculate_billing_cycle(datetime(2024, 1, 31, 10), True, now=datetime(2024, 2, 15))
        assert cycle.cycle_start == utc(2024, 1, 31, 10)
        assert cycle.cycle_end == utc(2024, 2, 29)

    @pytest.mark.parametrize("anchor_day", [1, 15, 28, 29, 30, 31])
    def test_cycle_contains_now_and_spans_one_month(self, anchor_day):
        anchor = utc(2023, 1, anchor_day, 10)
        now = utc(2024, 1, 1, 12)
        while now.year == 2024:
            cycle = calculate_billing_cycle(anchor, now=now)
            assert cycle.cycle_start <= now < cycle.cycle_end
            assert timedelta(days=28) <= cycle.cycle_end - cycle.cycle_start <= timedelta(days=31)
            assert cycle.days_remaining >= 0
            now += timedelta(days=1)


class TestFormatCycleDates:

    def test_formats_dates_and_reset_message(self):
        cycle = calculate_billing_cycle(utc(2024, 1, 31, 10), True, now=utc(2024, 2, 15))
        display = format_cycle_dates(cycle)
        assert display.start_formatted == "Jan 31"
        assert display.end_formatted == "Feb 29"
        assert display.reset_message == "Resets in 14 days"

    def test_reset_tomorrow(self):
        cycle = calculate_billing_cycle(utc(2024, 1, 10), now=utc(2024, 2, 9, 12))
        assert format_cycle_dates(cycle).reset_message == "Resets tomorrow"


# ---------------------------------------------------------------------------
# BillingCycleService
# ---------------------------------------------------------------------------

class TestBillingCycleService:

    @pytest.mark.asyncio
    async def test_no_cycle_for_inactive_subscription(self, store, billing_cycle):
        store.add_profile("u1", subscription_status="canceled", subscription_starts_at=utc(2024, 1, 1))
        assert await billing_cycle.get_current_billing_cycle("u1", now=utc(2024, 2, 1)) is None

    @pytest.mark.asyncio
    async def test_no_cycle_without_anchor(self, store, billing_cycle):
        store.add_profile("u1", subscription_status="active")
        assert await billing_cycle.get_current_billing_cycle("u1") is None

    @pytest.mark.asyncio
    async def test_no_cycle_for_missing_profile(self, billing_cycle):
        assert await billing_cycle.get_current_billing_cycle("ghost") is None

    @pytest.mark.asyncio
    async def test_no_cycle_on_read_failure(self, store, billing_cycle, subscriber):
        store.fail_on.add("get_profile")
        assert await billing_cycle.get_current_billing_cycle("sub-user") is None

    @pytest.mark.asyncio
    async def test_no_cycle_for_malformed_anchor(self, store, billing_cycle):
        store.add_profile(
            "u1",
            subscription_status="active",
            subscription_tier_id="tier_stories_plus",
            subscription_starts_at="not-a-date",
        )
        assert await billing_cycle.get_current_billing_cycle("u1") is None
        assert await billing_cycle.get_stories_in_current_cycle("u1") == 0

    @pytest.mark.asyncio
    async def test_counts_only_completed_stories_inside_window(self, store, billing_cycle, subscriber):
        now = utc(2024, 6, 15, 12)
        store.add_story("in-1", "sub-user", utc(2024, 6, 11))
        store.add_story("in-2", "sub-user", utc(2024, 6, 14), generation_status="text_complete")
        store.add_story("before", "sub-user", utc(2024, 6, 10, 23, 59))
        store.add_story("after", "sub-user", utc(2024, 7, 11))
        store.add_story("failed", "sub-user", utc(2024, 6, 12), generation_status="failed")
        store.add_story("deleted", "sub-user", utc(2024, 6, 12), deleted_at=utc(2024, 6, 13))
        store.add_story("other", "other-user", utc(2024, 6, 12))

        assert await billing_cycle.get_stories_in_current_cycle("sub-user", now=now) == 2

    @pytest.mark.asyncio
    async def test_first_cycle_excludes_stories_before_subscription_instant(self, store, billing_cycle):
        store.add_profile(
            "new-sub",
            subscription_status="active",
            subscription_tier_id="tier_stories_plus",
            subscription_starts_at=utc(2024, 6, 11, 12),
        )
        store.add_story("trial-story", "new-sub", utc(2024, 6, 11, 9))
        store.add_story("paid-story", "new-sub", utc(2024, 6, 11, 13))

        used = await billing_cycle.get_stories_in_current_cycle("new-sub", now=utc(2024, 6, 20))
        assert used == 1

    @pytest.mark.asyncio
    async def test_count_failure_reads_as_zero(self, store, billing_cycle, subscriber):
        store.fail_on.add("count_stories")
        assert await billing_cycle.get_stories_in_current_cycle("sub-user", now=utc(2024, 6, 15)) == 0

    @pytest.mark.asyncio
    async def test_has_stories_remaining(self, store, billing_cycle, subscriber):
        for i in range(28):
            store.add_story(f"s{i}", "sub-user", utc(2024, 6, 12) + timedelta(hours=i))

        result = await billing_cycle.has_stories_remaining("sub-user", now=utc(2024, 6, 15))
        assert result.used == 28
        assert result.limit == 30
        assert result.remaining == 2
        assert result.has_remaining is True
