from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
import stripe
from app.core.config import settings
from app.core.exceptions import PaymentConfigurationError
from typing import Optional
from app.api.v1.auth import get_current_user_id
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

# Purchase types carried in checkout metadata so fulfilment knows what was bought
PURCHASE_SUBSCRIPTION = "subscription"
PURCHASE_SINGLE_STORY = "single_story"


class CheckoutSessionRequest(BaseModel):
    priceId: Optional[str] = None
    successUrl: Optional[str] = None
    cancelUrl: Optional[str] = None


class StoryCheckoutRequest(BaseModel):
    storyId: Optional[str] = None
    successUrl: Optional[str] = None
    cancelUrl: Optional[str] = None


def _configure_stripe():
    if not settings.STRIPE_SECRET_KEY:
        raise PaymentConfigurationError()
    stripe.api_key = settings.STRIPE_SECRET_KEY


@router.post("/create-checkout-session")
async def create_checkout_session(
    request: CheckoutSessionRequest,
    user_id: str = Depends(get_current_user_id)
):
    """Start a Stories Plus subscription checkout."""
    _configure_stripe()

    price_id = request.priceId or settings.STRIPE_PRICE_STORIES_PLUS_MONTHLY
    if not price_id:
        raise PaymentConfigurationError("Stories Plus price not configured")

    # Use provided URLs or fall back to environment-configured frontend URL
    frontend_url = settings.FRONTEND_URL
    success_url = request.successUrl or f"{frontend_url}/dashboard?success=true"
    cancel_url = request.cancelUrl or f"{frontend_url}/pricing?canceled=true"

    try:
        checkout_session = stripe.checkout.Session.create(
            payment_method_types=['card'],
            line_items=[{'price': price_id, 'quantity': 1}],
            mode='subscription',
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=user_id,  # Identifies the user when the payment is fulfilled
            metadata={'user_id': user_id, 'purchase_type': PURCHASE_SUBSCRIPTION},
            subscription_data={'metadata': {'user_id': user_id}},
        )
        return {"url": checkout_session.url}
    except Exception as e:
        logger.error(f"Error creating subscription checkout for {user_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/create-story-checkout")
async def create_story_checkout(
    request: StoryCheckoutRequest,
    user_id: str = Depends(get_current_user_id)
):
    """Start a one-time checkout that unlocks a single story."""
    _configure_stripe()

    if not settings.STRIPE_PRICE_SINGLE_STORY:
        raise PaymentConfigurationError("Single story price not configured")

    frontend_url = settings.FRONTEND_URL
    if request.storyId:
        default_success = f"{frontend_url}/dashboard/stories/{request.storyId}?unlocked=true"
    else:
        default_success = f"{frontend_url}/dashboard?purchase=success"
    success_url = request.successUrl or default_success
    cancel_url = request.cancelUrl or f"{frontend_url}/dashboard?canceled=true"

    metadata = {'user_id': user_id, 'purchase_type': PURCHASE_SINGLE_STORY}
    if request.storyId:
        metadata['story_id'] = request.storyId

    try:
        checkout_session = stripe.checkout.Session.create(
            payment_method_types=['card'],
            line_items=[{'price': settings.STRIPE_PRICE_SINGLE_STORY, 'quantity': 1}],
            mode='payment',
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=user_id,
            metadata=metadata,
        )
        return {"url": checkout_session.url}
    except Exception as e:
        logger.error(f"Error creating story checkout for {user_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
