from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # MongoDB Configuration
    MONGO_URI: str
    MONGO_DB_NAME: str = "tuckandtale"

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Tuck and Tale"

    # Frontend Configuration
    FRONTEND_URL: str = "https://tuckandtale.com"  # Override with production URL in env

    # Stripe Configuration
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_PRICE_STORIES_PLUS_MONTHLY: Optional[str] = None
    STRIPE_PRICE_SINGLE_STORY: Optional[str] = None

    # Subscription limits
    SUBSCRIPTION_MONTHLY_LIMIT: int = 30  # Stories per billing cycle for subscribers

    # Tier IDs
    TIER_FREE: str = "tier_free"
    TIER_STORIES_PLUS: str = "tier_stories_plus"

    # Paywall settings
    PAYWALL_PARAGRAPH_INDEX: int = 3  # Paywall shows after this paragraph (0-indexed)

    # Testing Configuration
    TEST_MODE: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra env variables


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
