"""Repository for the persistent daily quota (QuotaUsage collection)."""

import logging
from datetime import datetime, timedelta

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from eatlock_api.services.quota.stores import QuotaDecision, QuotaStore
from eatlock_api.utils.dates import UTC_TZ, utc_now

logger = logging.getLogger(__name__)


class QuotaUsageRepository(QuotaStore):
    """
    Daily usage counters, one document per ``(user_id, day, kind)``.

    Document shape:
        _id: "<user_id>:<YYYY-MM-DD>:<kind>"
        user_id, day, kind
        count: admitted requests so far
        reset_at: start of the next UTC day
        created_at, updated_at

    ``consume`` is a single conditional upsert. The filter only matches
    while ``count < limit``; once the counter is full the upsert tries to
    insert a second document with the same ``_id`` and the server rejects
    it with a duplicate key error, so no request is admitted past the limit.
    """

    COLLECTION_NAME = "QuotaUsage"

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @staticmethod
    def _doc_id(user_id: str, kind: str, day: str) -> str:
        return f"{user_id}:{day}:{kind}"

    async def consume(self, user_id: str, kind: str, limit: int, day: str) -> QuotaDecision:
        if limit <= 0:
            return QuotaDecision(allowed=False, used=0, limit=limit)

        doc_id = self._doc_id(user_id, kind, day)
        now = utc_now()
        reset_at = datetime.strptime(day, "%Y-%m-%d").replace(tzinfo=UTC_TZ) + timedelta(days=1)

        try:
            doc = await self.collection.find_one_and_update(
                {"_id": doc_id, "count": {"$lt": limit}},
                {
                    "$inc": {"count": 1},
                    "$set": {"updated_at": now},
                    "$setOnInsert": {
                        "user_id": user_id,
                        "day": day,
                        "kind": kind,
                        "reset_at": reset_at,
                        "created_at": now,
                    },
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            used = await self.get_used(user_id, kind, day)
            return QuotaDecision(allowed=False, used=max(used, limit), limit=limit)

        logger.debug(f"Quota {kind} for {user_id}: {doc['count']}/{limit}")
        return QuotaDecision(allowed=True, used=doc["count"], limit=limit)

    async def get_used(self, user_id: str, kind: str, day: str) -> int:
        doc = await self.collection.find_one({"_id": self._doc_id(user_id, kind, day)})
        return doc.get("count", 0) if doc else 0
