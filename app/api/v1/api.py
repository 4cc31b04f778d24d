from fastapi import APIRouter
from app.api.v1 import auth, paywall, payments, subscription

api_router = APIRouter()

# Include all v1 routers
api_router.include_router(auth.router)
api_router.include_router(paywall.router)
api_router.include_router(subscription.router)
api_router.include_router(payments.router)
