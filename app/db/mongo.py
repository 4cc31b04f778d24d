from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

USER_PROFILES_COLLECTION = "user_profiles"
CONTENT_COLLECTION = "content"


class MongoDB:
    client: AsyncIOMotorClient = None
    db = None

    async def connect_to_database(self):
        logger.info("Connecting to MongoDB...")
        try:
            # tz_aware so billing-cycle math always sees UTC-aware datetimes
            self.client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
            self.db = self.client[settings.MONGO_DB_NAME]
            logger.info("Connected to MongoDB.")
        except Exception as e:
            logger.error(f"Could not connect to MongoDB: {e}")
            raise e

    async def ensure_indexes(self):
        """Create the indexes the billing queries rely on."""
        if self.db is None:
            return
        await self.db[USER_PROFILES_COLLECTION].create_index("user_id", unique=True)
        await self.db[CONTENT_COLLECTION].create_index("content_id", unique=True)
        await self.db[CONTENT_COLLECTION].create_index(
            [
                ("user_id", ASCENDING),
                ("content_type", ASCENDING),
                ("created_at", ASCENDING),
            ]
        )
        logger.info("MongoDB indexes ensured.")

    async def close_database_connection(self):
        logger.info("Closing MongoDB connection...")
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed.")


mongodb = MongoDB()


async def get_database():
    return mongodb.db
