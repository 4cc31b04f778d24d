"""
Persistence capability consumed by the billing services.

The services only ever need point reads/updates by id, atomic increments,
and a range count over a user's stories. Keeping that behind
``UserBillingStore`` lets the decision logic run against Mongo in
production and an in-memory fake in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from pymongo import ReturnDocument

from app.core.exceptions import BillingStoreError
from app.db.mongo import get_database, USER_PROFILES_COLLECTION, CONTENT_COLLECTION
from app.schemas.story import COUNTED_GENERATION_STATUSES
import logging

logger = logging.getLogger(__name__)


class UserBillingStore(ABC):
    """Point-get, point-update, atomic-increment and range-count over user billing data."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the raw profile document or None when it does not exist."""

    @abstractmethod
    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> bool:
        """Set fields on the profile. Returns False when no profile matched."""

    @abstractmethod
    async def increment(self, user_id: str, field: str, amount: int = 1) -> int:
        """Atomically add ``amount`` to a counter and return the new value."""

    @abstractmethod
    async def decrement_if_positive(self, user_id: str, field: str) -> bool:
        """Atomically subtract one from a counter only if it is above zero."""

    @abstractmethod
    async def count_stories(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        statuses: Sequence[str] = COUNTED_GENERATION_STATUSES,
    ) -> int:
        """Count non-deleted stories with ``start <= created_at < end``."""

    @abstractmethod
    async def get_story(self, story_id: str) -> Optional[Dict[str, Any]]:
        """Return the raw story document or None."""

    @abstractmethod
    async def update_story(self, story_id: str, fields: Dict[str, Any]) -> bool:
        """Set fields on a story. Returns False when no story matched."""


class MongoUserBillingStore(UserBillingStore):
    """UserBillingStore backed by the Motor client."""

    def __init__(self, db=None):
        self._db = db

    async def _collection(self, name: str):
        db = self._db if self._db is not None else await get_database()
        return db[name]

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        collection = await self._collection(USER_PROFILES_COLLECTION)
        return await collection.find_one({"user_id": user_id})

    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> bool:
        collection = await self._collection(USER_PROFILES_COLLECTION)
        result = await collection.update_one({"user_id": user_id}, {"$set": fields})
        return result.matched_count > 0

    async def increment(self, user_id: str, field: str, amount: int = 1) -> int:
        collection = await self._collection(USER_PROFILES_COLLECTION)
        doc = await collection.find_one_and_update(
            {"user_id": user_id},
            {"$inc": {field: amount}},
            projection={field: True},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise BillingStoreError(f"user profile '{user_id}' not found")
        return doc.get(field) or 0

    async def decrement_if_positive(self, user_id: str, field: str) -> bool:
        collection = await self._collection(USER_PROFILES_COLLECTION)
        # The filter guard makes the check and the decrement one operation
        result = await collection.update_one(
            {"user_id": user_id, field: {"$gt": 0}},
            {"$inc": {field: -1}},
        )
        return result.modified_count > 0

    async def count_stories(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        statuses: Sequence[str] = COUNTED_GENERATION_STATUSES,
    ) -> int:
        collection = await self._collection(CONTENT_COLLECTION)
        return await collection.count_documents({
            "user_id": user_id,
            "content_type": "story",
            "generation_status": {"$in": list(statuses)},
            "created_at": {"$gte": start, "$lt": end},
            "deleted_at": None,
        })

    async def get_story(self, story_id: str) -> Optional[Dict[str, Any]]:
        collection = await self._collection(CONTENT_COLLECTION)
        return await collection.find_one({"content_id": story_id})

    async def update_story(self, story_id: str, fields: Dict[str, Any]) -> bool:
        collection = await self._collection(CONTENT_COLLECTION)
        result = await collection.update_one({"content_id": story_id}, {"$set": fields})
        return result.matched_count > 0
