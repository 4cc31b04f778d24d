from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class PaywallBehavior(str, Enum):
    """What happens when a user asks for their next story."""
    FREE = "free"
    GENERATE_THEN_PAYWALL = "generate_then_paywall"
    PAYWALL_BEFORE_GENERATE = "paywall_before_generate"


class DenialReason(str, Enum):
    """Tag carried by a denied can-generate result to drive UI messaging."""
    SUBSCRIPTION_LIMIT_REACHED = "subscription_limit_reached"
    PAYWALL_REQUIRED = "paywall_required"
    NO_ACCESS = "no_access"


class BillingCycle(BaseModel):
    """One-month usage window anchored to the subscription start day."""
    cycle_start: datetime
    cycle_end: datetime
    days_remaining: int = Field(..., ge=0)


class CycleDisplay(BaseModel):
    """Human-readable cycle boundaries."""
    start_formatted: str
    end_formatted: str
    reset_message: str


class StoriesRemaining(BaseModel):
    has_remaining: bool
    used: int
    limit: int
    remaining: int


class PaywallBehaviorResult(BaseModel):
    """Classification of the user's next generation attempt."""
    story_number: int
    behavior: PaywallBehavior
    can_generate: bool
    has_credits: bool = False
    has_subscription: bool = False
    free_trial_used: bool = False


class BillingCycleInfo(BaseModel):
    """Subscriber quota snapshot for the current cycle."""
    used: int
    limit: int
    remaining: int
    days_until_reset: Optional[int] = None
    cycle_start: Optional[datetime] = None
    cycle_end: Optional[datetime] = None


class CanGenerateResult(BaseModel):
    """Allow/deny decision for a story generation request."""
    allowed: bool
    reason: Optional[DenialReason] = None
    message: Optional[str] = None
    paywall: PaywallBehaviorResult
    billing_cycle_info: Optional[BillingCycleInfo] = None


class UsageIncrementResult(BaseModel):
    new_story_count: int
    should_mark_paywall: bool
    credit_consumed: bool = False
    free_trial_marked: bool = False


class UsageStats(BaseModel):
    """Usage figures for dashboards."""
    has_active_subscription: bool
    # For subscribers
    stories_used_this_month: int = 0
    stories_remaining: int = 0
    monthly_limit: int
    days_until_reset: Optional[int] = None
    # For non-subscribers
    total_stories_generated: int = 0
    free_trial_used: bool = False
    generation_credits: int = 0


class PaywallViewingResult(BaseModel):
    required: bool
    is_unlocked: bool
    story_title: Optional[str] = None  # Only set for the story's owner


class PaywallGenerationResult(BaseModel):
    required: bool
    story_number: int
    has_credits: bool
    has_subscription: bool
    free_trial_available: bool


class SubscriptionSummary(BaseModel):
    """Subscription overview for the account page."""
    has_active_subscription: bool
    stories_remaining: int = 0
    stories_used_this_month: int = 0
    billing_cycle_start: Optional[datetime] = None
    billing_cycle_end: Optional[datetime] = None
    days_until_reset: Optional[int] = None


class GenerationCheckResponse(BaseModel):
    """Payload of the check-generation endpoint."""
    requires_paywall: bool
    story_number: int
    behavior: PaywallBehavior
    has_credits: bool
    has_subscription: bool
    free_trial_available: bool
    can_generate: bool
    reason: Optional[DenialReason] = None
    message: Optional[str] = None
    usage: UsageStats


class ViewingCheckResponse(BaseModel):
    required: bool
    is_unlocked: bool
    story_title: Optional[str] = None
    paywall_paragraph_index: int
