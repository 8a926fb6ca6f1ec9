"""MongoDB connection management using Motor async driver."""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from eatlock_api.db.repositories import QuotaUsageRepository
from eatlock_api.services.quota import MongoSlidingWindowStore

logger = logging.getLogger(__name__)

# Quota documents are only read for the current day; keep a week for support lookups
QUOTA_RETENTION_SECONDS = 7 * 24 * 60 * 60


class MongoDB:
    """
    MongoDB connection manager.

    One client per process. The quota store, the shared burst store and
    GridFS uploads all go through it.
    """

    client: AsyncIOMotorClient | None = None
    _db_name: str = "eatlock"

    @classmethod
    def connect(cls, uri: str, db_name: str = "eatlock", timeout_ms: int = 5000) -> None:
        """
        Create the client. No I/O happens until the first operation.

        Args:
            uri: MongoDB connection URI
            db_name: Default database name
            timeout_ms: Server selection timeout, bounds how long a quota
                check can stall before it fails open
        """
        cls.client = AsyncIOMotorClient(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            appname="eatlock-api",
        )
        cls._db_name = db_name

    @classmethod
    def close(cls) -> None:
        if cls.client is not None:
            cls.client.close()
            cls.client = None

    @classmethod
    def get_database(cls, name: str | None = None) -> AsyncIOMotorDatabase:
        """
        Get a database instance.

        Raises:
            RuntimeError: If MongoDB is not connected
        """
        if cls.client is None:
            raise RuntimeError("MongoDB not connected. Call MongoDB.connect() first.")
        return cls.client[name or cls._db_name]

    @classmethod
    def is_connected(cls) -> bool:
        return cls.client is not None

    @classmethod
    async def ensure_indexes(cls, db: AsyncIOMotorDatabase) -> None:
        """
        Create lookup and TTL indexes for the quota collections.

        Failures are logged; the quota engine fails open without them.
        """
        try:
            quota = db[QuotaUsageRepository.COLLECTION_NAME]
            await quota.create_index([("user_id", ASCENDING), ("day", ASCENDING)])
            await quota.create_index("reset_at", expireAfterSeconds=QUOTA_RETENTION_SECONDS)

            hits = db[MongoSlidingWindowStore.COLLECTION_NAME]
            await hits.create_index("expires_at", expireAfterSeconds=0)
        except PyMongoError as e:
            logger.warning(f"Could not create quota indexes: {e}")
            return

        logger.info("Quota indexes ensured")
