from fastapi import Depends

from app.db.billing_store import MongoUserBillingStore, UserBillingStore
from app.services.billing_cycle import BillingCycleService
from app.services.paywall import PaywallService
from app.services.story_completion import StoryCompletionService
from app.services.subscription import SubscriptionService
from app.services.usage_limits import StoryUsageLimitsService


def get_billing_store() -> UserBillingStore:
    return MongoUserBillingStore()


def get_story_completion_service(
    store: UserBillingStore = Depends(get_billing_store),
) -> StoryCompletionService:
    return StoryCompletionService(store)


def get_billing_cycle_service(
    store: UserBillingStore = Depends(get_billing_store),
) -> BillingCycleService:
    return BillingCycleService(store)


def get_usage_limits_service(
    completion: StoryCompletionService = Depends(get_story_completion_service),
    billing_cycle: BillingCycleService = Depends(get_billing_cycle_service),
) -> StoryUsageLimitsService:
    return StoryUsageLimitsService(completion, billing_cycle)


def get_paywall_service(
    store: UserBillingStore = Depends(get_billing_store),
    completion: StoryCompletionService = Depends(get_story_completion_service),
    usage_limits: StoryUsageLimitsService = Depends(get_usage_limits_service),
) -> PaywallService:
    return PaywallService(store, completion, usage_limits)


def get_subscription_service(
    store: UserBillingStore = Depends(get_billing_store),
    completion: StoryCompletionService = Depends(get_story_completion_service),
    paywall: PaywallService = Depends(get_paywall_service),
) -> SubscriptionService:
    return SubscriptionService(store, completion, paywall)
