"""
Pytest configuration for the Tuck and Tale billing tests.

Environment is set before any app import so Settings and the auth
dependency pick up test values.
"""

import os

os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ["TEST_MODE"] = "true"
os.environ.setdefault("SUBSCRIPTION_MONTHLY_LIMIT", "30")

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

import pytest

from app.core.config import Settings
from app.core.exceptions import BillingStoreError
from app.db.billing_store import UserBillingStore
from app.schemas.story import COUNTED_GENERATION_STATUSES
from app.services.billing_cycle import BillingCycleService
from app.services.paywall import PaywallService
from app.services.story_completion import StoryCompletionService
from app.services.subscription import SubscriptionService
from app.services.usage_limits import StoryUsageLimitsService

STORIES_PLUS = "tier_stories_plus"


class InMemoryUserBillingStore(UserBillingStore):
    """Dict-backed UserBillingStore with per-operation failure injection."""

    def __init__(self):
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.stories: Dict[str, Dict[str, Any]] = {}
        self.fail_on = set()
        self.calls = []

    def _record(self, op: str):
        self.calls.append(op)
        if op in self.fail_on:
            raise RuntimeError(f"simulated {op} failure")

    def add_profile(self, user_id: str, **fields) -> Dict[str, Any]:
        doc = {"user_id": user_id, **fields}
        self.profiles[user_id] = doc
        return doc

    def add_story(
        self,
        content_id: str,
        user_id: str,
        created_at: datetime,
        generation_status: str = "complete",
        **fields,
    ) -> Dict[str, Any]:
        doc = {
            "content_id": content_id,
            "user_id": user_id,
            "content_type": "story",
            "generation_status": generation_status,
            "created_at": created_at,
            "deleted_at": None,
            **fields,
        }
        self.stories[content_id] = doc
        return doc

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        self._record("get_profile")
        doc = self.profiles.get(user_id)
        return dict(doc) if doc else None

    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> bool:
        self._record("update_profile")
        if user_id not in self.profiles:
            return False
        self.profiles[user_id].update(fields)
        return True

    async def increment(self, user_id: str, field: str, amount: int = 1) -> int:
        self._record("increment")
        if user_id not in self.profiles:
            raise BillingStoreError(f"user profile '{user_id}' not found")
        doc = self.profiles[user_id]
        doc[field] = (doc.get(field) or 0) + amount
        return doc[field]

    async def decrement_if_positive(self, user_id: str, field: str) -> bool:
        self._record("decrement_if_positive")
        doc = self.profiles.get(user_id)
        if not doc or (doc.get(field) or 0) <= 0:
            return False
        doc[field] -= 1
        return True

    async def count_stories(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        statuses: Sequence[str] = COUNTED_GENERATION_STATUSES,
    ) -> int:
        self._record("count_stories")
        return sum(
            1 for story in self.stories.values()
            if story["user_id"] == user_id
            and story["content_type"] == "story"
            and story["generation_status"] in statuses
            and story.get("deleted_at") is None
            and start <= story["created_at"] < end
        )

    async def get_story(self, story_id: str) -> Optional[Dict[str, Any]]:
        self._record("get_story")
        doc = self.stories.get(story_id)
        return dict(doc) if doc else None

    async def update_story(self, story_id: str, fields: Dict[str, Any]) -> bool:
        self._record("update_story")
        if story_id not in self.stories:
            return False
        self.stories[story_id].update(fields)
        return True


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def config():
    return Settings(MONGO_URI="mongodb://localhost:27017", SUBSCRIPTION_MONTHLY_LIMIT=30)


@pytest.fixture
def store():
    return InMemoryUserBillingStore()


@pytest.fixture
def completion(store, config):
    return StoryCompletionService(store, config)


@pytest.fixture
def billing_cycle(store, config):
    return BillingCycleService(store, config)


@pytest.fixture
def usage_limits(completion, billing_cycle, config):
    return StoryUsageLimitsService(completion, billing_cycle, config)


@pytest.fixture
def paywall(store, completion, usage_limits):
    return PaywallService(store, completion, usage_limits)


@pytest.fixture
def subscriptions(store, completion, paywall, config):
    return SubscriptionService(store, completion, paywall, config)


@pytest.fixture
def subscriber(store):
    """Active Stories Plus subscriber anchored on 2024-05-11 12:00 UTC."""
    return store.add_profile(
        "sub-user",
        subscription_status="active",
        subscription_tier_id=STORIES_PLUS,
        subscription_starts_at=utc(2024, 5, 11, 12),
        total_stories_generated=40,
        free_trial_used=True,
        generation_credits=0,
        purchased_story_count=0,
    )
