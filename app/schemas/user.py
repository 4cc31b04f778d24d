from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class SubscriptionStatus(str, Enum):
    """Subscription states as stored on the user profile."""
    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INACTIVE = "inactive"


class UserBillingProfile(BaseModel):
    """
    Billing subset of a persisted user profile.

    Counters stored as null are read back as their zero value so a partially
    initialised profile never grants anything.
    """
    user_id: str
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    subscription_tier_id: Optional[str] = None
    subscription_starts_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    total_stories_generated: int = 0
    free_trial_used: bool = False
    generation_credits: int = 0
    purchased_story_count: int = 0

    class Config:
        from_attributes = True
        extra = "ignore"

    @field_validator("subscription_status", mode="before")
    @classmethod
    def _status_or_none(cls, value):
        if value is None:
            return SubscriptionStatus.NONE
        try:
            return SubscriptionStatus(value)
        except ValueError:
            return SubscriptionStatus.INACTIVE

    @field_validator(
        "total_stories_generated",
        "generation_credits",
        "purchased_story_count",
        mode="before",
    )
    @classmethod
    def _counter_or_zero(cls, value):
        return value or 0

    @field_validator("free_trial_used", mode="before")
    @classmethod
    def _flag_or_false(cls, value):
        return bool(value)

    @classmethod
    def from_document(cls, user_id: str, doc: dict) -> "UserBillingProfile":
        return cls(**{**doc, "user_id": user_id})

    @classmethod
    def empty(cls, user_id: str) -> "UserBillingProfile":
        """Fail-safe profile: no subscription, no credits, trial unused, zero stories."""
        return cls(user_id=user_id)


class UserStoryStatus(BaseModel):
    """Usage counters plus the derived subscription flag."""
    total_stories_generated: int = 0
    free_trial_used: bool = False
    generation_credits: int = 0
    purchased_story_count: int = 0
    has_active_subscription: bool = False
    subscription_tier_id: Optional[str] = None
